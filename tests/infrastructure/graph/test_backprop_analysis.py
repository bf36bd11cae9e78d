import unittest

from src.dagnet.infrastructure.graph._backprop import (
    BackpropState,
    analyze_backprop,
    force_backward,
    plan_backprop,
)


def _state(layers):
    """layers: list of (name, is_loss, inputs, outputs, propagate_down, needs, allow)."""
    return BackpropState(
        layer_names=tuple(l[0] for l in layers),
        is_loss=tuple(l[1] for l in layers),
        inputs=tuple(tuple(l[2]) for l in layers),
        outputs=tuple(tuple(l[3]) for l in layers),
        propagate_down=tuple(tuple(l[4]) for l in layers),
        needs_backward=tuple(l[5] for l in layers),
        allow_force_backward=tuple(tuple(l[6]) for l in layers),
    )


# data -> fc -> h -> lsm -> p -> loss(p, label)
#      \-> aux -> side (never reaches the loss)
CLASSIFIER = [
    ("fc", False, ["data"], ["h"], [True], True, [True]),
    ("aux", False, ["data"], ["side"], [True], True, [True]),
    ("lsm", False, ["h"], ["p"], [True], True, [True]),
    ("loss", True, ["p", "label"], ["l"], [True, False], True, [True, False]),
]


class TestAnalyzeBackprop(unittest.TestCase):
    def test_layers_off_the_loss_path_are_pruned(self):
        plan = analyze_backprop(_state(CLASSIFIER))
        self.assertEqual(plan.needs_backward, [True, False, True, True])
        self.assertEqual(plan.propagate_down[1], [False])
        self.assertIn("h", plan.under_loss)
        self.assertIn("data", plan.under_loss)
        self.assertNotIn("side", plan.under_loss)

    def test_refused_input_is_skip_backprop(self):
        plan = analyze_backprop(_state(CLASSIFIER))
        self.assertIn("label", plan.skip_backprop)
        self.assertNotIn("data", plan.skip_backprop)
        self.assertNotIn("h", plan.skip_backprop)

    def test_one_wanting_consumer_keeps_tensor(self):
        layers = [
            ("fc", False, ["data"], ["h"], [True], True, [True]),
            ("a", False, ["h"], ["ya"], [False], True, [True]),
            ("b", False, ["h"], ["yb"], [True], True, [True]),
            ("loss", True, ["ya", "yb"], ["l"], [True, True], True, [True, True]),
        ]
        plan = analyze_backprop(_state(layers))
        self.assertNotIn("h", plan.skip_backprop)
        self.assertTrue(plan.needs_backward[0])

    def test_producer_of_skipped_tensor_is_pruned(self):
        layers = [
            ("sig", False, ["data"], ["h"], [True], True, [True]),
            ("stop", False, ["h"], ["y"], [False], True, [True]),
            ("loss", True, ["y", "label"], ["l"], [True, False], True, [True, False]),
        ]
        plan = analyze_backprop(_state(layers))
        self.assertIn("h", plan.skip_backprop)
        self.assertFalse(plan.needs_backward[0])
        self.assertEqual(plan.propagate_down[0], [False])

    def test_weight_layer_keeps_backward_without_input_gradients(self):
        layers = [
            ("fc", False, ["data"], ["h"], [False], True, [True]),
            ("loss", True, ["h", "label"], ["l"], [True, False], True, [True, False]),
        ]
        plan = analyze_backprop(_state(layers))
        self.assertTrue(plan.needs_backward[0])
        self.assertEqual(plan.propagate_down[0], [False])
        self.assertIn("data", plan.skip_backprop)

    def test_initially_idle_layer_stays_idle(self):
        layers = [
            ("sig", False, ["data"], ["h"], [False], False, [True]),
            ("loss", True, ["h", "label"], ["l"], [True, False], True, [True, False]),
        ]
        plan = analyze_backprop(_state(layers))
        self.assertFalse(plan.needs_backward[0])

    def test_seeded_under_loss(self):
        layers = [("fc", False, ["data"], ["h"], [True], True, [True])]
        self.assertFalse(analyze_backprop(_state(layers)).needs_backward[0])
        self.assertTrue(analyze_backprop(_state(layers), ["h"]).needs_backward[0])

    def test_snapshot_is_not_mutated(self):
        state = _state(CLASSIFIER)
        analyze_backprop(state)
        self.assertEqual(state.needs_backward, (True, True, True, True))
        self.assertEqual(state.propagate_down[1], (True,))


class TestForceBackward(unittest.TestCase):
    def test_every_layer_runs_and_permitted_inputs_propagate(self):
        state = _state(CLASSIFIER)
        plan = force_backward(state, analyze_backprop(state))
        self.assertTrue(plan.forced)
        self.assertEqual(plan.needs_backward, [True] * 4)
        self.assertEqual(plan.propagate_down[1], [True])
        self.assertEqual(plan.propagate_down[3], [True, False])
        self.assertEqual(plan.skip_backprop, {"label"})

    def test_plan_backprop_switch(self):
        state = _state(CLASSIFIER)
        self.assertFalse(plan_backprop(state).forced)
        self.assertTrue(plan_backprop(state, force=True).forced)


if __name__ == "__main__":
    unittest.main()
