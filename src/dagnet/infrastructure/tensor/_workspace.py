"""
Graph-wide scratch workspace.

One `SharedWorkspace` exists per assembled graph and is handed to every layer.
Its byte buffer only grows: `reserve` keeps it at the largest request seen so
far, so reshaping to a smaller batch never reallocates.
"""

from __future__ import annotations

import logging
from math import prod
from typing import Any, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class SharedWorkspace:
    """
    Monotonically growing byte buffer shared by all layers of a graph.
    """

    def __init__(self, size: int = 0) -> None:
        self._buffer = np.zeros(max(0, int(size)), dtype=np.uint8)

    @property
    def size(self) -> int:
        """Current size in bytes."""
        return int(self._buffer.size)

    def reserve(self, required: int) -> bool:
        """
        Grow to at least `required` bytes.

        Returns
        -------
        bool
            True if the buffer was reallocated.
        """
        required = int(required)
        if required < 0:
            raise ValueError(f"Workspace request must be non-negative, got {required}")
        if required <= self._buffer.size:
            return False
        logger.debug("growing workspace %d -> %d bytes", self._buffer.size, required)
        self._buffer = np.zeros(required, dtype=np.uint8)
        return True

    def view(self, dtype: Any, shape: Sequence[int]) -> np.ndarray:
        """
        Typed view over the front of the buffer.

        Raises
        ------
        ValueError
            If the view does not fit in the reserved bytes.
        """
        dtype = np.dtype(dtype)
        shape = tuple(int(d) for d in shape)
        nbytes = prod(shape) * dtype.itemsize
        if nbytes > self._buffer.size:
            raise ValueError(
                f"Workspace view of {nbytes} bytes exceeds reserved "
                f"{self._buffer.size} bytes"
            )
        return self._buffer[:nbytes].view(dtype).reshape(shape)

    def __repr__(self) -> str:
        return f"SharedWorkspace(size={self.size})"
