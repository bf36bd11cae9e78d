import unittest

from src.dagnet.domain.utils._control_path import create_path_builder


class Refused(Exception):
    pass


def _refuse(obj, method, state):
    raise Refused(f"{method.__name__}:{state}")


path = create_path_builder()


class Machine:
    def __init__(self, state="idle"):
        self._state = state

    def run(self, x):
        """Run the machine."""


@path(Machine, Machine.run, "idle", on_missing=_refuse)
def _run_idle(self, x):
    return x + 1


@path(Machine, Machine.run, "busy", "done")
def _run_busy(self, x):
    return x * 10


class TestControlPath(unittest.TestCase):
    def test_dispatches_on_state(self):
        self.assertEqual(Machine("idle").run(1), 2)
        self.assertEqual(Machine("busy").run(2), 20)
        self.assertEqual(Machine("done").run(3), 30)

    def test_state_change_switches_path(self):
        m = Machine("idle")
        self.assertEqual(m.run(1), 2)
        m._state = "busy"
        self.assertEqual(m.run(1), 10)

    def test_missing_state_calls_hook(self):
        with self.assertRaises(Refused) as ctx:
            Machine("broken").run(1)
        self.assertEqual(str(ctx.exception), "run:broken")

    def test_base_docstring_is_kept(self):
        self.assertEqual(Machine.run.__doc__, "Run the machine.")
        self.assertTrue(getattr(Machine.run, "__control_path__", False))

    def test_missing_state_without_hook_raises_not_implemented(self):
        builder = create_path_builder()

        class Lamp:
            _state = "on"

            def toggle(self):
                pass

        @builder(Lamp, Lamp.toggle, "on")
        def _toggle_on(self):
            return "off"

        lamp = Lamp()
        self.assertEqual(lamp.toggle(), "off")
        lamp._state = "off"
        with self.assertRaises(NotImplementedError):
            lamp.toggle()

    def test_object_without_state_raises(self):
        builder = create_path_builder()

        class Stateless:
            def go(self):
                pass

        @builder(Stateless, Stateless.go, "x")
        def _go(self):
            return 1

        with self.assertRaises(NotImplementedError):
            Stateless().go()

    def test_requires_a_state(self):
        with self.assertRaises(ValueError):
            path(Machine, Machine.run)

    def test_rejects_unhashable_state(self):
        with self.assertRaises(TypeError):
            path(Machine, Machine.run, ["not", "hashable"])


if __name__ == "__main__":
    unittest.main()
