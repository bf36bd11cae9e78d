"""
Contracts and shared math for weight fillers.

The concrete filler registry lives in the infrastructure layer. This module
fixes the registry's interface and provides the fan-in/fan-out computation
that fan-based fillers (Glorot) derive from a weight's shape.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, TypeVar

from .._tensor import ISharedTensor


T = TypeVar("T", bound=Callable[..., ISharedTensor])


class _WeightInitializer(ABC):
    """
    Abstract registry-backed weight filler dispatcher.

    Fillers are identified by name and mutate a weight tensor in place.
    """

    INITIALIZERS: Dict[str, Callable[..., ISharedTensor]] = {}

    @classmethod
    @abstractmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """Return a decorator registering a filler under `name`."""
        ...

    @classmethod
    @abstractmethod
    def available(cls) -> tuple[str, ...]:
        """Sorted names of all registered fillers."""
        ...

    @abstractmethod
    def __call__(self, tensor: ISharedTensor, *args: Any, **kwargs: Any) -> ISharedTensor:
        """Fill `tensor` in place and return it."""
        ...


def _calculate_fan_in_and_fan_out(shape: tuple[int, ...]) -> tuple[int, int]:
    """
    Compute (fan_in, fan_out) of a weight shape.

    Linear weights are laid out as (out_features, in_features), convolution
    filters as (out_channels, in_channels, k1, k2, ...).
    """
    if len(shape) == 0:
        return 1, 1
    if len(shape) == 1:
        return shape[0], shape[0]
    if len(shape) == 2:
        fan_out, fan_in = shape
        return fan_in, fan_out

    receptive_field = 1
    for d in shape[2:]:
        receptive_field *= int(d)
    return int(shape[1]) * receptive_field, int(shape[0]) * receptive_field
