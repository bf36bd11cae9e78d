import unittest

from src.dagnet.domain._config import (
    ConvolutionConfig,
    DimCheckMode,
    LayerConfig,
    LayerType,
    LinearConfig,
    NegativeLogLikelihoodConfig,
    PoolingConfig,
    ReshapeConfig,
    SequentialConfig,
    WeightConfig,
)
from src.dagnet.domain._errors import (
    BackendError,
    DimensionMismatchError,
    GraphConfigurationError,
    GraphStateError,
    UnknownInputTensorError,
)


class TestLayerType(unittest.TestCase):
    def test_in_place_kinds(self):
        in_place = {t for t in LayerType if t.supports_in_place()}
        self.assertEqual(in_place, {LayerType.RELU, LayerType.TANH})

    def test_only_sequential_is_container(self):
        containers = [t for t in LayerType if t.is_container()]
        self.assertEqual(containers, [LayerType.SEQUENTIAL])

    def test_loss_auto_creates_one_output(self):
        caps = LayerType.NEGATIVE_LOG_LIKELIHOOD.capabilities
        self.assertTrue(caps.auto_outputs)
        self.assertTrue(caps.loss)
        self.assertEqual(caps.exact_num_inputs, 2)
        self.assertEqual(caps.required_outputs(), 1)

    def test_learnable_kinds(self):
        self.assertTrue(LayerType.LINEAR.capabilities.learnable)
        self.assertTrue(LayerType.CONVOLUTION.capabilities.learnable)
        self.assertFalse(LayerType.POOLING.capabilities.learnable)


class TestKindConfigs(unittest.TestCase):
    def test_linear_rejects_non_positive_output_size(self):
        with self.assertRaises(ValueError):
            LinearConfig(output_size=0)

    def test_convolution_normalizes_scalars(self):
        cfg = ConvolutionConfig(num_output=4, filter_shape=3, stride=2, padding=1)
        self.assertEqual(cfg.filter_shape, (3,))
        self.assertEqual(cfg.stride, (2,))
        self.assertEqual(cfg.padding, (1,))

    def test_convolution_rejects_per_axis_values(self):
        with self.assertRaises(ValueError):
            ConvolutionConfig(num_output=4, filter_shape=(3, 5))

    def test_convolution_rejects_negative_padding(self):
        with self.assertRaises(ValueError):
            ConvolutionConfig(num_output=4, padding=-1)

    def test_pooling_rejects_zero_stride(self):
        with self.assertRaises(ValueError):
            PoolingConfig(stride=0)

    def test_reshape_shape_is_tuple(self):
        self.assertEqual(ReshapeConfig(shape=[2, 3]).shape, (2, 3))

    def test_nll_requires_classes(self):
        with self.assertRaises(ValueError):
            NegativeLogLikelihoodConfig(num_classes=0)


class TestLayerConfig(unittest.TestCase):
    def test_kind_from_enum(self):
        cfg = LayerConfig("relu", LayerType.RELU)
        self.assertIs(cfg.layer_type, LayerType.RELU)
        self.assertIsNone(cfg.kind_config)

    def test_kind_from_config(self):
        linear = LinearConfig(output_size=10)
        cfg = LayerConfig("fc", linear)
        self.assertIs(cfg.layer_type, LayerType.LINEAR)
        self.assertIs(cfg.kind_config, linear)

    def test_sequential_config_is_a_kind(self):
        cfg = LayerConfig("block", SequentialConfig())
        self.assertIs(cfg.layer_type, LayerType.SEQUENTIAL)

    def test_rejects_unknown_kind(self):
        with self.assertRaises(TypeError):
            LayerConfig("x", "relu")

    def test_defaults(self):
        cfg = LayerConfig("fc", LinearConfig(output_size=3))
        self.assertTrue(cfg.propagate_down_for(0))
        self.assertIsNone(cfg.loss_weight_override(0))
        self.assertEqual(cfg.weight_config(1), WeightConfig())

    def test_copy_is_independent(self):
        cfg = LayerConfig("relu", LayerType.RELU, inputs=["a"])
        dup = cfg.copy()
        dup.add_output("a")
        dup.add_input("b")
        self.assertEqual(cfg.inputs, ["a"])
        self.assertEqual(cfg.outputs, [])


class TestWeightConfig(unittest.TestCase):
    def test_unspecified_multipliers_resolve_to_one(self):
        cfg = WeightConfig()
        self.assertEqual(cfg.effective_lr_mult(), 1.0)
        self.assertEqual(cfg.effective_decay_mult(), 1.0)
        self.assertIs(cfg.share_mode, DimCheckMode.STRICT)

    def test_explicit_multipliers(self):
        cfg = WeightConfig(lr_mult=2, decay_mult=0)
        self.assertEqual(cfg.effective_lr_mult(), 2.0)
        self.assertEqual(cfg.effective_decay_mult(), 0.0)


class TestSequentialConfig(unittest.TestCase):
    def test_inputs_are_normalized(self):
        cfg = SequentialConfig()
        cfg.add_input("data", [1, 30, 30])
        self.assertEqual(cfg.inputs, [("data", (1, 30, 30))])
        self.assertEqual(cfg.input_names(), ["data"])

    def test_add_layer(self):
        cfg = SequentialConfig()
        cfg.add_layer(LayerConfig("relu", LayerType.RELU))
        self.assertEqual([l.name for l in cfg.layers], ["relu"])


class TestErrors(unittest.TestCase):
    def test_configuration_errors_are_value_errors(self):
        err = UnknownInputTensorError("fc", "missing")
        self.assertIsInstance(err, GraphConfigurationError)
        self.assertIsInstance(err, ValueError)
        self.assertEqual(err.layer, "fc")
        self.assertEqual(err.tensor, "missing")

    def test_dimension_mismatch_names_both_shapes(self):
        err = DimensionMismatchError("w", "fa", "fb", (10, 784), (784, 10), "shape")
        self.assertIn("[10, 784]", str(err))
        self.assertIn("[784, 10]", str(err))
        self.assertEqual(err.owner, "fa")

    def test_backend_error_location(self):
        err = BackendError("gemm", "bad", layer="fc", operation="compute_output")
        self.assertIn("fc", str(err))
        self.assertIn("compute_output", str(err))
        self.assertIsNone(BackendError("gemm", "bad").layer)

    def test_state_error(self):
        err = GraphStateError("backward", "wired")
        self.assertEqual(err.operation, "backward")
        self.assertIn("wired", str(err))


if __name__ == "__main__":
    unittest.main()
