"""
Glorot (Xavier) uniform filler.

Draws from ``U(-bound, +bound)`` with ``bound = sqrt(6 / (fan_in + fan_out))``,
the default for linear and convolution weights.
"""

import math

import numpy as np

from ._base import WeightInitializer
from ...tensor._shared_tensor import SharedTensor
from ....domain.utils._weight_initialization import _calculate_fan_in_and_fan_out


@WeightInitializer.register_initializer("glorot")
def glorot(tensor: SharedTensor) -> SharedTensor:
    """
    Apply Glorot uniform initialization in place.

    Parameters
    ----------
    tensor:
        The tensor to initialize.

    Returns
    -------
    SharedTensor
        The initialized tensor (same object).
    """
    fan_in, fan_out = _calculate_fan_in_and_fan_out(tuple(tensor.shape))
    fan_in = max(1, int(fan_in))
    fan_out = max(1, int(fan_out))

    bound = math.sqrt(6.0 / float(fan_in + fan_out))
    w = np.random.uniform(-bound, bound, size=tensor.shape).astype(
        tensor.dtype, copy=False
    )
    tensor.copy_from_numpy(w)
    return tensor
