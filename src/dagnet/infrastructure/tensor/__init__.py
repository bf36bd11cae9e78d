from ._shared_tensor import SharedTensor
from ._registry import TensorPair, TensorRegistry
from ._workspace import SharedWorkspace

__all__ = [
    SharedTensor.__name__,
    TensorPair.__name__,
    TensorRegistry.__name__,
    SharedWorkspace.__name__,
]
