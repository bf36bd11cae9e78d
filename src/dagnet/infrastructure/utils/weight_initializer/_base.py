"""
Weight filler registry and dispatch.

This module defines the concrete `WeightInitializer` used by layer workers to
fill freshly allocated weights. Fillers are registered by name with a
decorator and mutate a `SharedTensor` in place.

Usage example
-------------
Registering a filler:

    @WeightInitializer.register_initializer("glorot")
    def glorot(tensor: SharedTensor) -> SharedTensor:
        ...

Applying a filler:

    init = WeightInitializer("glorot")
    init(weight_tensor)

Notes
-----
- Registration keys must be unique unless explicitly overwritten.
- A `WeightConfig.filler` names the filler to use instead of the layer's
  default; `WeightConfig.filler_value` is forwarded to fillers that take a
  `value` argument.
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, TypeVar

from ....domain.utils._weight_initialization import _WeightInitializer
from ...tensor._shared_tensor import SharedTensor

T = TypeVar("T", bound=Callable[..., SharedTensor])


class WeightInitializer(_WeightInitializer):
    """
    Registry-backed weight filler dispatcher.

    Raises
    ------
    ValueError
        If `initializer_name` is not registered.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., SharedTensor]]] = {}
    VALUE_FILLERS: ClassVar[set] = set()

    def __init__(self, initializer_name: str) -> None:
        try:
            self._initializer: Callable[..., SharedTensor] = self.INITIALIZERS[
                initializer_name
            ]
        except KeyError as e:
            available = ", ".join(sorted(self.INITIALIZERS)) or "<none>"
            raise ValueError(
                f"Unsupported initializer name: {initializer_name!r}. "
                f"Available: {available}"
            ) from e
        self.name = initializer_name

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False, takes_value: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a filler under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the filler later.
        overwrite:
            If False (default), raises if `name` is already registered.
        takes_value:
            The filler accepts a `value` keyword fed from
            `WeightConfig.filler_value`.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.INITIALIZERS:
                raise ValueError(f"Initializer already registered: {name!r}")
            cls.INITIALIZERS[name] = func
            if takes_value:
                cls.VALUE_FILLERS.add(name)
            else:
                cls.VALUE_FILLERS.discard(name)
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered filler names (sorted)."""
        return tuple(sorted(cls.INITIALIZERS))

    @property
    def takes_value(self) -> bool:
        return self.name in self.VALUE_FILLERS

    def __call__(self, tensor: SharedTensor, *args: Any, **kwargs: Any) -> SharedTensor:
        return self._initializer(tensor, *args, **kwargs)
