import unittest

import numpy as np

from src.dagnet.domain._config import (
    LayerConfig,
    LayerType,
    LinearConfig,
    NegativeLogLikelihoodConfig,
    SequentialConfig,
    WeightConfig,
)
from src.dagnet.domain._optimizers import ILearnableWeight, IOptimizer
from src.dagnet.infrastructure.graph import Network
from src.dagnet.infrastructure.optimizers import SGD, LRPolicy


def _linear_network(**weight_kwargs) -> Network:
    config = SequentialConfig(inputs=[("data", (1, 2))], force_backward=True)
    config.add_layer(
        LayerConfig(
            "fc", LinearConfig(output_size=2), weights=[WeightConfig(**weight_kwargs)]
        )
    )
    return Network.from_config(config)


def _set_weight(network: Network, data, grad):
    weight = network.learnable_weights()[0]
    weight.data.copy_from_numpy(np.asarray(data, dtype=np.float32))
    weight.gradient.copy_from_numpy(np.asarray(grad, dtype=np.float32))
    return weight


W0 = np.array([[1.0, -2.0], [0.5, 3.0]], dtype=np.float32)
G0 = np.array([[0.1, -0.2], [0.3, 0.0]], dtype=np.float32)


class TestSGD(unittest.TestCase):
    def test_invalid_hyperparams_raise(self):
        network = _linear_network()
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.0)
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.1, momentum=1.0)
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.1, momentum=-0.1)
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.1, weight_decay=-1.0)

    def test_invalid_schedule_raises(self):
        network = _linear_network()
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.1, lr_policy=LRPolicy.EXP, gamma=0.0)
        with self.assertRaises(ValueError):
            _ = SGD(network, lr=0.1, lr_policy=LRPolicy.STEP, gamma=0.5, stepsize=0)
        _ = SGD(network, lr=0.1, gamma=5.0)

    def test_step_policy_decays_applied_rate(self):
        network = _linear_network()
        opt = SGD(network, lr=1.0, lr_policy=LRPolicy.STEP, gamma=0.5, stepsize=2)
        rates = []
        for _ in range(5):
            rates.append(opt.learning_rate())
            weight = _set_weight(network, W0, G0)
            opt.step()
            np.testing.assert_allclose(
                weight.data.data, W0 - rates[-1] * G0, rtol=1e-6, atol=1e-7
            )
        self.assertEqual(rates, [1.0, 1.0, 0.5, 0.5, 0.25])

    def test_step_updates_weight(self):
        network = _linear_network()
        weight = _set_weight(network, W0, G0)
        opt = SGD(network, lr=0.5)
        opt.step()
        np.testing.assert_allclose(weight.data.data, W0 - 0.5 * G0, rtol=1e-6, atol=1e-7)
        self.assertEqual(opt.iteration, 1)

    def test_momentum_accumulates_history(self):
        network = _linear_network()
        weight = _set_weight(network, W0, G0)
        lr, momentum = 0.1, 0.9
        opt = SGD(network, lr=lr, momentum=momentum)

        opt.step()
        weight.gradient.copy_from_numpy(G0)
        opt.step()

        v1 = lr * G0
        v2 = momentum * v1 + lr * G0
        np.testing.assert_allclose(weight.data.data, W0 - v1 - v2, rtol=1e-5, atol=1e-6)

    def test_weight_decay_applied(self):
        network = _linear_network()
        weight = _set_weight(network, W0, G0)
        lr, wd = 0.1, 0.01
        SGD(network, lr=lr, weight_decay=wd).step()
        # classical L2: w <- w - lr * (g + wd * w)
        expected = W0 - lr * (G0 + wd * W0)
        np.testing.assert_allclose(weight.data.data, expected, rtol=1e-6, atol=1e-7)

    def test_multipliers(self):
        network = _linear_network(lr_mult=2.0, decay_mult=0.0)
        weight = _set_weight(network, W0, G0)
        SGD(network, lr=0.1, weight_decay=0.5).step()
        np.testing.assert_allclose(
            weight.data.data, W0 - 0.2 * G0, rtol=1e-6, atol=1e-7
        )

    def test_zero_grad_clears_gradients(self):
        network = _linear_network()
        weight = _set_weight(network, W0, G0)
        SGD(network, lr=0.1).zero_grad()
        self.assertFalse(np.any(weight.gradient.data))

    def test_satisfies_optimizer_contracts(self):
        opt = SGD(_linear_network(), lr=0.1)
        self.assertIsInstance(opt, IOptimizer)
        for weight in opt.params:
            self.assertIsInstance(weight, ILearnableWeight)

    def test_params_are_unique_weights(self):
        config = SequentialConfig(inputs=[("data", (1, 2))])
        config.add_layer(
            LayerConfig("a", LinearConfig(2), weights=[WeightConfig("w")])
        )
        config.add_layer(
            LayerConfig("b", LinearConfig(2), weights=[WeightConfig("w")])
        )
        opt = SGD(Network.from_config(config), lr=0.1)
        self.assertEqual([w.name for w in opt.params], ["w"])


class TestTrainStep(unittest.TestCase):
    def test_loss_decreases(self):
        config = SequentialConfig(inputs=[("data", (4, 3)), ("label", (4,))])
        config.add_layer(
            LayerConfig("fc", LinearConfig(output_size=2, bias=True), inputs=["data"])
        )
        config.add_layer(LayerConfig("lsm", LayerType.LOG_SOFTMAX))
        config.add_layer(
            LayerConfig(
                "loss",
                NegativeLogLikelihoodConfig(num_classes=2),
                inputs=["SEQUENTIAL_1", "label"],
                propagate_down=[True, False],
            )
        )
        network = Network.from_config(config)
        opt = SGD(network, lr=0.5, momentum=0.5)

        inputs = {
            "data": np.array(
                [[1, 0, 0], [0, 1, 0], [1, 1, 0], [0, 0, 1]], dtype=np.float32
            ),
            "label": np.array([0, 1, 1, 0], dtype=np.float32),
        }
        losses = [opt.train_step(inputs) for _ in range(30)]
        self.assertTrue(all(np.isfinite(losses)))
        self.assertLess(losses[-1], losses[0])
        self.assertEqual(opt.iteration, 30)


if __name__ == "__main__":
    unittest.main()
