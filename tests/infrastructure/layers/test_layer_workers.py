import unittest

import numpy as np

from src.dagnet.domain._config import (
    ConvolutionConfig,
    LayerConfig,
    LayerType,
    LinearConfig,
    NegativeLogLikelihoodConfig,
    PoolingConfig,
    PoolingMode,
    ReshapeConfig,
    WeightConfig,
)
from src.dagnet.domain._errors import BackendError, GraphConfigurationError
from src.dagnet.infrastructure.backend import NumpyBackend
from src.dagnet.infrastructure.graph import Sequential
from src.dagnet.infrastructure.layers import (
    Convolution,
    Flatten,
    Linear,
    NegativeLogLikelihood,
    Pooling,
    ReLU,
    Reshape,
    create_worker,
    registered_layer_types,
)
from src.dagnet.infrastructure.tensor import SharedTensor, SharedWorkspace


def _tensor(arr):
    t = SharedTensor()
    t.copy_from_numpy(np.asarray(arr, dtype=np.float32))
    return t


def _reshape(worker, backend, inputs, n_weights=0, n_outputs=1):
    weights = [SharedTensor() for _ in range(n_weights)]
    weight_grads = [SharedTensor() for _ in range(n_weights)]
    input_grads = [SharedTensor(t.shape) for t in inputs]
    outputs = [SharedTensor() for _ in range(n_outputs)]
    output_grads = [SharedTensor() for _ in range(n_outputs)]
    worker.reshape(
        backend, inputs, input_grads, weights, weight_grads, outputs, output_grads
    )
    return weights, weight_grads, input_grads, outputs, output_grads


class TestRegistry(unittest.TestCase):
    def test_every_kind_has_a_worker(self):
        self.assertEqual(set(registered_layer_types()), set(LayerType))
        self.assertIs(Sequential.layer_type, LayerType.SEQUENTIAL)

    def test_create_worker(self):
        worker = create_worker(LayerConfig("r", LayerType.RELU))
        self.assertIsInstance(worker, ReLU)
        self.assertEqual(worker.name, "r")

    def test_kind_config_required(self):
        with self.assertRaises(TypeError):
            Linear(None, name="fc")
        with self.assertRaises(TypeError):
            Reshape(None, name="r")


class TestLinear(unittest.TestCase):
    def setUp(self):
        self.backend = NumpyBackend()
        self.worker = Linear(LinearConfig(output_size=3, bias=True), name="fc")
        rng = np.random.default_rng(0)
        self.x = rng.standard_normal((2, 2, 2)).astype(np.float32)
        self.w = rng.standard_normal((3, 4)).astype(np.float32)
        self.b = np.array([0.5, -1.0, 2.0], dtype=np.float32)

    def test_defaults(self):
        self.assertEqual(self.worker.num_weights(), 2)
        self.assertEqual(self.worker.default_filler(0), "glorot")
        self.assertEqual(self.worker.default_filler(1), "constant")
        self.assertFalse(self.worker.is_loss())

    def test_forward_backward(self):
        x = _tensor(self.x)
        weights, weight_grads, input_grads, outputs, output_grads = _reshape(
            self.worker, self.backend, [x], n_weights=2
        )
        self.assertEqual(weights[0].shape, (3, 4))
        self.assertEqual(weights[1].shape, (3,))
        self.assertEqual(outputs[0].shape, (2, 3))

        weights[0].copy_from_numpy(self.w)
        weights[1].copy_from_numpy(self.b)
        self.worker.compute_output(self.backend, weights, [x], outputs)
        x2 = self.x.reshape(2, 4)
        np.testing.assert_allclose(
            outputs[0].data, x2 @ self.w.T + self.b, rtol=1e-5, atol=1e-5
        )

        dy = np.array([[1.0, 0.0, -1.0], [0.5, 2.0, 0.0]], dtype=np.float32)
        output_grads[0].copy_from_numpy(dy)
        self.worker.compute_input_gradient(
            self.backend, weights, outputs, output_grads, [x], input_grads
        )
        np.testing.assert_allclose(
            input_grads[0].data, (dy @ self.w).reshape(2, 2, 2), rtol=1e-5, atol=1e-5
        )

        for _ in range(2):
            self.worker.compute_parameters_gradient(
                self.backend, outputs, output_grads, [x], weight_grads
            )
        np.testing.assert_allclose(
            weight_grads[0].data, 2.0 * dy.T @ x2, rtol=1e-5, atol=1e-5
        )
        np.testing.assert_allclose(
            weight_grads[1].data, 2.0 * dy.sum(axis=0), rtol=1e-5, atol=1e-5
        )

    def test_fill_weights_uses_config_filler(self):
        weights = [SharedTensor((3, 4)), SharedTensor((3,))]
        self.worker.fill_weights(
            weights, [WeightConfig(filler="ones"), WeightConfig(filler_value=0.1)]
        )
        np.testing.assert_array_equal(weights[0].data, np.ones((3, 4)))
        np.testing.assert_allclose(weights[1].data, np.full(3, 0.1), rtol=1e-6)


class TestUtilityWorkers(unittest.TestCase):
    def setUp(self):
        self.backend = NumpyBackend()

    def test_flatten(self):
        worker = Flatten(name="flat")
        x = _tensor(np.arange(24).reshape(2, 3, 4))
        _, _, input_grads, outputs, output_grads = _reshape(worker, self.backend, [x])
        self.assertEqual(outputs[0].shape, (2, 12))
        worker.compute_output(self.backend, [], [x], outputs)
        np.testing.assert_array_equal(outputs[0].data, np.arange(24).reshape(2, 12))

        output_grads[0].copy_from_numpy(np.ones((2, 12)))
        worker.compute_input_gradient(
            self.backend, [], outputs, output_grads, [x], input_grads
        )
        self.assertEqual(input_grads[0].shape, (2, 3, 4))
        np.testing.assert_array_equal(input_grads[0].data, np.ones((2, 3, 4)))

    def test_reshape_rejects_element_count_change(self):
        worker = Reshape(ReshapeConfig(shape=(5, 5)), name="r")
        with self.assertRaises(GraphConfigurationError) as ctx:
            _reshape(worker, self.backend, [SharedTensor((2, 3))])
        self.assertEqual(ctx.exception.layer, "r")


class TestNegativeLogLikelihood(unittest.TestCase):
    def setUp(self):
        self.backend = NumpyBackend()
        self.worker = NegativeLogLikelihood(
            NegativeLogLikelihoodConfig(num_classes=3), name="loss"
        )
        self.logp = np.log(
            np.array([[0.7, 0.2, 0.1], [0.1, 0.1, 0.8]], dtype=np.float32)
        )

    def test_loss_defaults(self):
        self.assertTrue(self.worker.is_loss())
        self.assertEqual(self.worker.loss_weight(0), 1.0)
        self.assertTrue(self.worker.allow_force_backward(0))
        self.assertFalse(self.worker.allow_force_backward(1))

    def test_forward_and_gradient(self):
        logp, labels = _tensor(self.logp), _tensor([0, 2])
        _, _, input_grads, outputs, output_grads = _reshape(
            self.worker, self.backend, [logp, labels]
        )
        self.assertEqual(outputs[0].shape, (1,))
        self.worker.compute_output(self.backend, [], [logp, labels], outputs)
        expected = -(np.log(0.7) + np.log(0.8)) / 2
        self.assertAlmostEqual(float(outputs[0].data[0]), expected, places=5)

        output_grads[0].fill(2.0)
        self.worker.compute_input_gradient(
            self.backend, [], outputs, output_grads, [logp, labels], input_grads
        )
        grad = np.zeros((2, 3), dtype=np.float32)
        grad[0, 0] = grad[1, 2] = -1.0
        np.testing.assert_allclose(input_grads[0].data, grad)
        np.testing.assert_array_equal(input_grads[1].data, [0.0, 0.0])

    def test_label_out_of_range(self):
        logp, labels = _tensor(self.logp), _tensor([0, 3])
        _, _, _, outputs, _ = _reshape(self.worker, self.backend, [logp, labels])
        with self.assertRaises(BackendError):
            self.worker.compute_output(self.backend, [], [logp, labels], outputs)


class TestWindowedWorkers(unittest.TestCase):
    def setUp(self):
        self.backend = NumpyBackend()

    def test_convolution_shapes_and_workspace(self):
        worker = Convolution(
            ConvolutionConfig(num_output=4, filter_shape=3, padding=1, bias=True),
            name="conv",
        )
        x = SharedTensor((2, 3, 8, 8))
        weights, _, _, outputs, _ = _reshape(worker, self.backend, [x], n_weights=2)
        self.assertEqual(weights[0].shape, (4, 3, 3, 3))
        self.assertEqual(weights[1].shape, (4,))
        self.assertEqual(outputs[0].shape, (2, 4, 8, 8))
        self.assertEqual(
            worker.workspace_size(self.backend, [x.shape]), 3 * 9 * 64 * 4
        )

    def test_convolution_bias_is_added(self):
        worker = Convolution(
            ConvolutionConfig(num_output=2, filter_shape=1, bias=True), name="conv"
        )
        x = _tensor(np.ones((1, 1, 2, 2)))
        weights, _, _, outputs, _ = _reshape(worker, self.backend, [x], n_weights=2)
        ws = SharedWorkspace(worker.workspace_size(self.backend, [x.shape]))
        worker.set_workspace(ws)
        weights[0].copy_from_numpy(np.array([1.0, 2.0]).reshape(2, 1, 1, 1))
        weights[1].copy_from_numpy(np.array([0.5, -0.5]))
        worker.compute_output(self.backend, weights, [x], outputs)
        np.testing.assert_allclose(outputs[0].data[0, 0], np.full((2, 2), 1.5))
        np.testing.assert_allclose(outputs[0].data[0, 1], np.full((2, 2), 1.5))

    def test_convolution_rejects_non_nchw(self):
        worker = Convolution(ConvolutionConfig(num_output=2), name="conv")
        with self.assertRaises(GraphConfigurationError):
            _reshape(worker, self.backend, [SharedTensor((1, 30, 30))], n_weights=1)

    def test_pooling_window_must_fit(self):
        worker = Pooling(PoolingConfig(mode=PoolingMode.AVERAGE, filter_shape=5), name="p")
        with self.assertRaises(GraphConfigurationError):
            _reshape(worker, self.backend, [SharedTensor((1, 1, 3, 3))])

    def test_pooling_output_shape(self):
        worker = Pooling(PoolingConfig(), name="p")
        _, _, _, outputs, _ = _reshape(worker, self.backend, [SharedTensor((2, 3, 8, 6))])
        self.assertEqual(outputs[0].shape, (2, 3, 4, 3))


if __name__ == "__main__":
    unittest.main()
