"""
Tensor interface definitions.

The graph engine only needs a small structural contract from the buffers it
wires together: a shape that can be changed without reallocating on every
batch, a notion of which device holds the most recent copy, and the ability
to alias another buffer's storage (used for in-place computation and shared
weights). Concrete storage lives in the infrastructure layer.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class ISharedTensor(Protocol):
    """
    Domain-level contract for a growable, shareable N-dimensional buffer.

    Notes
    -----
    - `resize` is idempotent and never shrinks backing storage.
    - `share_storage_with` makes two tensors view the same storage; each keeps
      its own shape.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """Current logical shape."""
        ...

    @property
    def size(self) -> int:
        """Number of elements of the current shape."""
        ...

    @property
    def capacity(self) -> int:
        """Number of elements the backing storage can hold."""
        ...

    @property
    def latest_device(self) -> str:
        """Device holding the most recent copy of the data."""
        ...

    def resize(self, shape: Sequence[int]) -> None:
        """Change the logical shape, growing storage if needed."""
        ...

    def share_storage_with(self, other: "ISharedTensor") -> None:
        """Alias `other`'s storage from now on."""
        ...

    def sync(self, device: str) -> None:
        """Make `device` hold an up-to-date copy."""
        ...

    @property
    def data(self) -> Any:
        """Writable backend-native view of the current shape."""
        ...

    def write(self, values: Any) -> None:
        """Overwrite the contents with `values` of equal element count."""
        ...

    def fill(self, value: float) -> None: ...
