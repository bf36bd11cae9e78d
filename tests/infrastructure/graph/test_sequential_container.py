import unittest

import numpy as np

from src.dagnet.domain._config import (
    LayerConfig,
    LayerType,
    LinearConfig,
    SequentialConfig,
)
from src.dagnet.domain._errors import ArityMismatchError
from src.dagnet.infrastructure.backend import NumpyBackend
from src.dagnet.infrastructure.graph import Graph, Sequential
from src.dagnet.infrastructure.graph._diagnostics import build_report


def _block():
    inner = SequentialConfig()
    inner.add_layer(LayerConfig("fc", LinearConfig(output_size=3)))
    inner.add_layer(LayerConfig("relu", LayerType.RELU))
    return inner


def _model(force_backward=True, **block_kwargs):
    config = SequentialConfig(inputs=[("data", (2, 4))], force_backward=force_backward)
    config.add_layer(LayerConfig("block", _block(), **block_kwargs))
    config.add_layer(
        LayerConfig(
            "head",
            LinearConfig(output_size=2),
            loss_weights=[] if force_backward else [1.0],
        )
    )
    return config


class TestSequentialContainer(unittest.TestCase):
    def setUp(self):
        self.backend = NumpyBackend()
        self.x = np.random.RandomState(3).randn(2, 4).astype(np.float32)

    def test_nested_graph_shares_parent_input(self):
        graph = Graph(_model(), self.backend)
        block = graph.layer("block").worker
        self.assertIsInstance(block, Sequential)
        inner_input = block.inner_graph.input_pairs[0]
        self.assertEqual(block.inner_graph.input_names, ["block.data"])
        self.assertIs(inner_input.data, graph.input_pairs[0].data)
        self.assertIsNot(inner_input.gradient, graph.input_pairs[0].gradient)
        self.assertIs(
            graph.layer("block").outputs[0], block.inner_graph.output_pairs[0]
        )
        self.assertIs(block.inner_graph.workspace, graph.workspace)

    def test_forward_backward_through_container(self):
        graph = Graph(_model(), self.backend)
        graph.input_pairs[0].data.copy_from_numpy(self.x)
        inner = graph.layer("block").worker.inner_graph
        inner.layer("fc").weights_data[0].fill(0.25)

        graph.forward(self.backend)
        self.assertEqual(graph.output_pairs[0].shape, (2, 2))
        hidden = np.maximum(self.x @ np.full((3, 4), 0.25, dtype=np.float32).T, 0)
        np.testing.assert_allclose(
            inner.output_pairs[0].data.data, hidden, rtol=1e-5, atol=1e-6
        )

        graph.output_pairs[0].gradient.fill(1.0)
        graph.backward(self.backend)
        self.assertTrue(np.any(inner.layer("fc").weights_gradient[0].data != 0))
        self.assertTrue(np.any(graph.input_pairs[0].gradient.data != 0))
        self.assertTrue(all(layer.needs_backward for layer in inner.layers))

    def test_weights_and_report_include_nested_graph(self):
        graph = Graph(_model(), self.backend)
        self.assertEqual([w.name for w in graph.learnable_weights()], ["head.0", "fc.0"])
        self.assertTrue(graph.layer("block").has_learnable_weights())
        report = build_report(graph)
        self.assertEqual(len(report.children), 1)
        self.assertEqual(report.children[0].name, "block")
        self.assertIn("fc", report.children[0].to_text())

    def test_refused_input_gradient_is_not_written(self):
        graph = Graph(
            _model(force_backward=False, propagate_down=[False]), self.backend
        )
        graph.input_pairs[0].data.copy_from_numpy(self.x)
        graph.input_pairs[0].gradient.fill(7.0)
        graph.forward(self.backend)
        graph.backward(self.backend)

        inner = graph.layer("block").worker.inner_graph
        self.assertTrue(graph.layer("block").needs_backward)
        self.assertTrue(np.any(inner.layer("fc").weights_gradient[0].data != 0))
        np.testing.assert_array_equal(graph.input_pairs[0].gradient.data, 7.0)

    def test_declared_inputs_must_match(self):
        inner = _block()
        inner.add_input("a", (2, 4))
        inner.add_input("b", (2, 4))
        config = SequentialConfig(inputs=[("data", (2, 4))])
        config.add_layer(LayerConfig("block", inner, inputs=["data"]))
        with self.assertRaises(ArityMismatchError):
            Graph(config, self.backend)

    def test_requires_sequential_config(self):
        config = SequentialConfig(inputs=[("data", (2, 4))])
        config.add_layer(LayerConfig("block", LayerType.SEQUENTIAL))
        with self.assertRaises(TypeError):
            Graph(config, self.backend)


if __name__ == "__main__":
    unittest.main()
