"""
NumPy-backed shared tensor.

A `SharedTensor` is a shaped view over a growable, flat float32 storage.
Several tensors can view the same storage (`share_storage_with`), each with
its own shape; this is how weights are tied between layers even when their
shapes differ but their element counts match.

Design notes
------------
- `resize` is idempotent and lazy: the storage only grows, so alternating
  batch sizes never reallocate once the largest shape has been seen.
- Growing the storage happens inside the shared `_Storage` holder, so every
  tensor aliasing it observes the new buffer.
- `latest_device` records which device holds the freshest copy. The NumPy
  backend computes on "cpu", so syncing only updates the marker.
"""

from __future__ import annotations

from math import prod
from typing import Any, Sequence

import numpy as np

from ...domain._tensor import ISharedTensor


def _normalize_shape(shape: Sequence[int]) -> tuple[int, ...]:
    dims = tuple(int(d) for d in shape)
    if any(d < 0 for d in dims):
        raise ValueError(f"Tensor dimensions must be non-negative, got {dims}")
    return dims


class _Storage:
    """Mutable holder of the flat buffer so aliasing tensors see reallocation."""

    __slots__ = ("array",)

    def __init__(self, capacity: int, dtype: np.dtype) -> None:
        self.array = np.zeros(capacity, dtype=dtype)

    def grow(self, capacity: int) -> None:
        if capacity <= self.array.size:
            return
        grown = np.zeros(capacity, dtype=self.array.dtype)
        grown[: self.array.size] = self.array
        self.array = grown


class SharedTensor(ISharedTensor):
    """
    Growable N-dimensional float buffer that can alias another tensor.

    Parameters
    ----------
    shape : Sequence[int], optional
        Initial logical shape. Defaults to `()`, a single element.
    dtype : numpy dtype, optional
        Element type. Defaults to float32.
    device : str, optional
        Initial device marker. Defaults to "cpu".
    """

    __slots__ = ("_shape", "_storage", "_latest_device")

    def __init__(
        self,
        shape: Sequence[int] = (),
        *,
        dtype: Any = np.float32,
        device: str = "cpu",
    ) -> None:
        self._shape = _normalize_shape(shape)
        self._storage = _Storage(prod(self._shape), np.dtype(dtype))
        self._latest_device = device

    # ------------------------------------------------------------------
    # Shape / storage
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        return self._shape

    @property
    def size(self) -> int:
        return prod(self._shape)

    @property
    def capacity(self) -> int:
        return int(self._storage.array.size)

    @property
    def dtype(self) -> np.dtype:
        return self._storage.array.dtype

    @property
    def nbytes(self) -> int:
        return self.size * self.dtype.itemsize

    def resize(self, shape: Sequence[int]) -> None:
        """
        Change the logical shape, growing the storage only when needed.

        Existing contents are kept in flat order; newly grown elements are
        zero.
        """
        shape = _normalize_shape(shape)
        self._storage.grow(prod(shape))
        self._shape = shape

    def share_storage_with(self, other: "SharedTensor") -> None:
        """
        View `other`'s storage from now on, keeping this tensor's shape.

        Raises
        ------
        ValueError
            If the shared storage is too small for this tensor's shape, or
            the element types differ.
        """
        if other.dtype != self.dtype:
            raise ValueError(
                f"Cannot share storage between {self.dtype} and {other.dtype}"
            )
        if other.capacity < self.size:
            raise ValueError(
                f"Cannot view storage of {other.capacity} elements with shape "
                f"{list(self._shape)}"
            )
        self._storage = other._storage

    def shares_storage_with(self, other: "SharedTensor") -> bool:
        return self._storage is other._storage

    # ------------------------------------------------------------------
    # Device bookkeeping
    # ------------------------------------------------------------------
    @property
    def latest_device(self) -> str:
        return self._latest_device

    def sync(self, device: str) -> None:
        self._latest_device = device

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------
    @property
    def data(self) -> np.ndarray:
        """Writable NumPy view of the current shape."""
        return self._storage.array[: self.size].reshape(self._shape)

    def to_numpy(self) -> np.ndarray:
        """Return a copy of the current contents."""
        return self.data.copy()

    def copy_from_numpy(self, arr: Any) -> None:
        """
        Resize to `arr.shape` and copy its contents in.
        """
        arr = np.asarray(arr, dtype=self.dtype)
        self.resize(arr.shape)
        self.data[...] = arr

    def write(self, values: np.ndarray) -> None:
        """
        Overwrite the contents with `values` of equal element count.

        Used by backends whose results have a different but compatible shape
        (e.g. an in-place reshape aliasing this tensor).
        """
        values = np.asarray(values, dtype=self.dtype)
        if values.size != self.size:
            raise ValueError(
                f"Cannot write {values.size} elements into tensor of shape "
                f"{list(self._shape)}"
            )
        self.data[...] = values.reshape(self._shape)

    def fill(self, value: float) -> None:
        self.data.fill(value)

    def __repr__(self) -> str:
        return (
            f"SharedTensor(shape={list(self._shape)}, capacity={self.capacity}, "
            f"device={self._latest_device!r})"
        )
