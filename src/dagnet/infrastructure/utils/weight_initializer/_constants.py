"""
Constant fillers.

- ``constant``: every element set to ``value`` (default 0.0); the default
  for bias weights.
- ``zeros`` / ``ones``: shorthands, mostly for tests and deterministic setups.
"""

from ._base import WeightInitializer
from ...tensor._shared_tensor import SharedTensor


@WeightInitializer.register_initializer("constant", takes_value=True)
def constant(tensor: SharedTensor, value: float = 0.0) -> SharedTensor:
    """
    Fill `tensor` with `value` in place.

    Returns
    -------
    SharedTensor
        The initialized tensor (same object).
    """
    tensor.fill(float(value))
    return tensor


@WeightInitializer.register_initializer("zeros")
def zeros(tensor: SharedTensor) -> SharedTensor:
    tensor.fill(0.0)
    return tensor


@WeightInitializer.register_initializer("ones")
def ones(tensor: SharedTensor) -> SharedTensor:
    tensor.fill(1.0)
    return tensor
