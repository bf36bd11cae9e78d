"""
State-based method dispatch ("control paths") via decorators.

This module routes a method call to one of several registered implementations
based on the object's runtime `_state` value. It is how the execution driver
implements its state machine: `forward`, `backward`, ... each have one control
path per state in which they are legal, and a single refusal hook for every
other state.

Core idea
---------
- A class defines a *base* method; its signature and docstring become the
  public ones.
- Control paths are registered for that method, each keyed by
  (ClassName, MethodName, StateVal).
- At call time the installed wrapper reads `self._state` and calls the
  matching implementation as `impl(self, *args, **kwargs)`.

Usage
-----
    path = create_path_builder()

    class Machine:
        _state = "idle"
        def run(self) -> int: ...

    @path(Machine, Machine.run, "idle", on_missing=refuse)
    def _run_idle(self) -> int:
        ...

Notes
-----
- The first registration replaces the base method on the class with the
  dispatching wrapper.
- Registrations are stored in a mapping owned by the builder; separate
  builders never see each other's paths.
"""

from collections import namedtuple
from functools import wraps
from typing import Any, Callable, Dict, Hashable, Optional, Type

from typing_extensions import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

MissingPathHook = Callable[[Any, Callable[..., Any], Hashable], None]

MethodKey = namedtuple("MethodKey", ["ClassName", "MethodName", "StateVal"])


def create_path_builder() -> Callable[..., Callable[[Callable[P, R]], Callable[P, R]]]:
    """
    Create a builder used to register state-keyed control paths.

    Returns
    -------
    Callable
        `templator(cls, method, *states, on_missing=None)` returning a
        decorator. The decorated function is registered for every state in
        `states` and `cls.method` becomes a dispatcher.
    """

    methods_map: Dict[MethodKey, Callable[..., Any]] = {}
    missing_hooks: Dict[tuple, MissingPathHook] = {}

    def templator(
        cls: Type,
        method: Callable[P, R],
        *states: Hashable,
        on_missing: Optional[MissingPathHook] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator registering a control path for `states`.

        Parameters
        ----------
        cls : Type
            Class whose method is dispatched.
        method : Callable
            Base method (or an already installed dispatcher).
        *states : Hashable
            State values selecting the decorated implementation.
        on_missing : Optional[MissingPathHook]
            Called as `on_missing(self, method, state)` when no path matches
            the current state. It is expected to raise; if it returns, or if
            no hook was ever given, `NotImplementedError` is raised.

        Raises
        ------
        TypeError
            If a state is not hashable.
        ValueError
            If no state is given.
        """
        if not states:
            raise ValueError("At least one state is required for a control path.")
        for state in states:
            try:
                hash(state)
            except TypeError:
                raise TypeError(f"State must be hashable. Got {state!r}") from None

        method_name = method.__name__
        owner_key = (cls.__name__, method_name)
        if on_missing is not None:
            missing_hooks[owner_key] = on_missing

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            for state in states:
                methods_map[MethodKey(cls.__name__, method_name, state)] = sub_method

            if getattr(getattr(cls, method_name, None), "__control_path__", False):
                return sub_method

            @wraps(method)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                if not hasattr(self, "_state"):
                    raise NotImplementedError(
                        f"{type(self)} is missing attribute '_state' (@property)"
                    )
                state = self._state
                impl = methods_map.get(MethodKey(cls.__name__, method_name, state))
                if impl is not None:
                    return impl(self, *args, **kwargs)
                hook = missing_hooks.get(owner_key)
                if hook is not None:
                    hook(self, wrapper, state)
                raise NotImplementedError(
                    f"Missing control path (state={state!r}) for {method_name}"
                )

            wrapper.__control_path__ = True  # type: ignore[attr-defined]
            setattr(cls, method_name, wrapper)
            return sub_method

        return decorator

    return templator
