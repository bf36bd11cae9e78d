"""
Compute backend contract.

Layer workers never compute numerics themselves; they call primitives on a
compute backend. This module describes the primitives the built-in layer
catalog needs. All calls are synchronous. A backend reports failures by
raising `BackendError(kind, message)`; the graph tags the error with the layer
and operation and propagates it without retrying.

Array arguments are backend-native arrays (NumPy arrays for the reference
backend). Output arguments are written in place.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class IComputeBackend(Protocol):
    """
    Structural interface of a compute backend.
    """

    @property
    def device(self) -> str:
        """Identifier of the device this backend computes on (e.g. "cpu")."""
        ...

    def synchronize(self) -> None:
        """Block until all previously issued work is complete."""
        ...

    # ---- dense algebra ----
    def gemm(
        self,
        alpha: float,
        a: Any,
        trans_a: bool,
        b: Any,
        trans_b: bool,
        beta: float,
        c: Any,
    ) -> None:
        """c <- alpha * op(a) @ op(b) + beta * c"""
        ...

    def axpy(self, alpha: float, x: Any, y: Any) -> None:
        """y <- alpha * x + y"""
        ...

    def dot(self, x: Any, y: Any) -> float: ...

    # ---- pointwise activations ----
    def relu(self, x: Any, out: Any) -> None: ...
    def relu_grad(self, y: Any, dy: Any, dx: Any) -> None: ...
    def sigmoid(self, x: Any, out: Any) -> None: ...
    def sigmoid_grad(self, y: Any, dy: Any, dx: Any) -> None: ...
    def tanh(self, x: Any, out: Any) -> None: ...
    def tanh_grad(self, y: Any, dy: Any, dx: Any) -> None: ...

    # ---- normalizers ----
    def softmax(self, x: Any, out: Any) -> None: ...
    def softmax_grad(self, y: Any, dy: Any, dx: Any) -> None: ...
    def log_softmax(self, x: Any, out: Any) -> None: ...
    def log_softmax_grad(self, y: Any, dy: Any, dx: Any) -> None: ...

    # ---- windowed operations ----
    def convolution_workspace_size(
        self,
        input_shape: Sequence[int],
        filter_shape: Sequence[int],
        stride: int,
        padding: int,
    ) -> int:
        """Bytes of scratch space needed by the convolution primitives."""
        ...

    def convolution(
        self, x: Any, w: Any, out: Any, workspace: Any, stride: int, padding: int
    ) -> None: ...

    def convolution_grad_data(
        self, w: Any, dy: Any, dx: Any, workspace: Any, stride: int, padding: int
    ) -> None: ...

    def convolution_grad_filter(
        self, x: Any, dy: Any, dw: Any, workspace: Any, stride: int, padding: int
    ) -> None: ...

    def pooling_workspace_size(
        self, input_shape: Sequence[int], kernel: int, stride: int, padding: int
    ) -> int: ...

    def pooling(
        self,
        mode: str,
        x: Any,
        out: Any,
        workspace: Any,
        kernel: int,
        stride: int,
        padding: int,
    ) -> None: ...

    def pooling_grad(
        self,
        mode: str,
        x: Any,
        y: Any,
        dy: Any,
        dx: Any,
        workspace: Any,
        kernel: int,
        stride: int,
        padding: int,
    ) -> None: ...
