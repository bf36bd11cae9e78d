import unittest

from src.dagnet.infrastructure.optimizers import LRPolicy, get_learning_rate


class TestGetLearningRate(unittest.TestCase):
    def test_fixed_ignores_iteration(self):
        for iteration in (0, 1, 1000):
            self.assertEqual(
                get_learning_rate(LRPolicy.FIXED, 0.1, iteration, gamma=0.5), 0.1
            )

    def test_step_decays_every_stepsize_iterations(self):
        rates = [
            get_learning_rate(LRPolicy.STEP, 1.0, i, gamma=0.5, stepsize=3)
            for i in range(7)
        ]
        self.assertEqual(rates, [1.0, 1.0, 1.0, 0.5, 0.5, 0.5, 0.25])

    def test_exp_decays_every_iteration(self):
        self.assertAlmostEqual(
            get_learning_rate(LRPolicy.EXP, 0.2, 3, gamma=0.9), 0.2 * 0.9**3
        )

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            get_learning_rate(LRPolicy.FIXED, 0.1, -1)
        with self.assertRaises(ValueError):
            get_learning_rate(LRPolicy.STEP, 0.1, 5, gamma=0.5, stepsize=0)

    def test_policy_from_value(self):
        self.assertIs(LRPolicy("step"), LRPolicy.STEP)
        self.assertTrue(LRPolicy.EXP.requires_gamma())
        self.assertFalse(LRPolicy.EXP.requires_stepsize())


if __name__ == "__main__":
    unittest.main()
