"""
Reference NumPy compute backend.

`NumpyBackend` realizes every primitive of `IComputeBackend` on the CPU with
NumPy. Outputs are written into the caller's arrays; nothing is returned
except scalars.

Design notes
------------
- Convolution is lowered to GEMM through im2col. The column matrix of one
  sample lives in the graph's shared workspace, which is why layers ask the
  backend for `convolution_workspace_size` before the first pass.
- Pooling pads into the workspace as well. Max pooling recomputes the winning
  positions during the gradient instead of caching them: the workspace is
  shared, so anything stored there during forward may be overwritten by a
  later layer before backward runs.
- NumPy failures (shape errors, bad indices) are reported as
  `BackendError(kind, message)`; the graph tags them with the failing layer.

All tensors follow the NCHW layout for the windowed operations.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Sequence, Tuple, TypeVar

import numpy as np

from ...domain._backend import IComputeBackend
from ...domain._errors import BackendError

F = TypeVar("F", bound=Callable[..., Any])

_FLOAT = np.dtype(np.float32)


def _backend_op(kind: str) -> Callable[[F], F]:
    """Translate NumPy failures raised by a primitive into `BackendError`."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except BackendError:
                raise
            except (ValueError, IndexError, TypeError, FloatingPointError) as e:
                raise BackendError(kind, str(e)) from e

        return wrapper  # type: ignore[return-value]

    return decorator


def _out_size(size: int, kernel: int, stride: int, padding: int) -> int:
    return (size + 2 * padding - kernel) // stride + 1


def _as_batch_rows(x: np.ndarray) -> np.ndarray:
    return x.reshape(x.shape[0], -1)


def _im2col(
    x: np.ndarray, col: np.ndarray, k: int, s: int, p: int, h_out: int, w_out: int
) -> None:
    """Unfold one (C, H, W) sample into `col` of shape (C*k*k, h_out*w_out)."""
    c = x.shape[0]
    x_pad = np.pad(x, ((0, 0), (p, p), (p, p)), mode="constant")
    cols = col.reshape(c, k, k, h_out, w_out)
    for i in range(k):
        for j in range(k):
            cols[:, i, j] = x_pad[:, i : i + s * h_out : s, j : j + s * w_out : s]


def _col2im(
    col: np.ndarray, dx: np.ndarray, k: int, s: int, p: int, h_out: int, w_out: int
) -> None:
    """Fold `col` back into the (C, H, W) sample `dx`, overwriting it."""
    c, h, w = dx.shape
    dx_pad = np.zeros((c, h + 2 * p, w + 2 * p), dtype=dx.dtype)
    cols = col.reshape(c, k, k, h_out, w_out)
    for i in range(k):
        for j in range(k):
            dx_pad[:, i : i + s * h_out : s, j : j + s * w_out : s] += cols[:, i, j]
    dx[...] = dx_pad[:, p : p + h, p : p + w]


class NumpyBackend(IComputeBackend):
    """
    CPU compute backend built on NumPy.

    Parameters
    ----------
    device : str, optional
        Device marker reported to tensors. Defaults to "cpu".
    """

    def __init__(self, device: str = "cpu") -> None:
        self._device = device

    @property
    def device(self) -> str:
        return self._device

    def synchronize(self) -> None:
        # NumPy calls complete before returning.
        return None

    # ------------------------------------------------------------------
    # Dense algebra
    # ------------------------------------------------------------------
    @_backend_op("gemm")
    def gemm(
        self,
        alpha: float,
        a: np.ndarray,
        trans_a: bool,
        b: np.ndarray,
        trans_b: bool,
        beta: float,
        c: np.ndarray,
    ) -> None:
        op_a = a.T if trans_a else a
        op_b = b.T if trans_b else b
        product = np.matmul(op_a, op_b)
        if product.shape != c.shape:
            raise BackendError(
                "gemm",
                f"result shape {list(product.shape)} does not match output "
                f"shape {list(c.shape)}",
            )
        if beta == 0.0:
            c[...] = alpha * product
        else:
            c[...] = alpha * product + beta * c

    @_backend_op("axpy")
    def axpy(self, alpha: float, x: np.ndarray, y: np.ndarray) -> None:
        y += alpha * x.reshape(y.shape)

    @_backend_op("dot")
    def dot(self, x: np.ndarray, y: np.ndarray) -> float:
        return float(np.dot(x.reshape(-1), y.reshape(-1)))

    # ------------------------------------------------------------------
    # Pointwise activations
    # ------------------------------------------------------------------
    @_backend_op("relu")
    def relu(self, x: np.ndarray, out: np.ndarray) -> None:
        np.maximum(x, 0.0, out=out)

    @_backend_op("relu_grad")
    def relu_grad(self, y: np.ndarray, dy: np.ndarray, dx: np.ndarray) -> None:
        dx[...] = dy * (y > 0.0)

    @_backend_op("sigmoid")
    def sigmoid(self, x: np.ndarray, out: np.ndarray) -> None:
        out[...] = 0.5 * (1.0 + np.tanh(0.5 * x))

    @_backend_op("sigmoid_grad")
    def sigmoid_grad(self, y: np.ndarray, dy: np.ndarray, dx: np.ndarray) -> None:
        dx[...] = dy * y * (1.0 - y)

    @_backend_op("tanh")
    def tanh(self, x: np.ndarray, out: np.ndarray) -> None:
        np.tanh(x, out=out)

    @_backend_op("tanh_grad")
    def tanh_grad(self, y: np.ndarray, dy: np.ndarray, dx: np.ndarray) -> None:
        dx[...] = dy * (1.0 - y * y)

    # ------------------------------------------------------------------
    # Normalizers (over all non-batch dimensions)
    # ------------------------------------------------------------------
    @_backend_op("softmax")
    def softmax(self, x: np.ndarray, out: np.ndarray) -> None:
        rows = _as_batch_rows(x)
        shifted = rows - rows.max(axis=1, keepdims=True)
        e = np.exp(shifted)
        out[...] = (e / e.sum(axis=1, keepdims=True)).reshape(out.shape)

    @_backend_op("softmax_grad")
    def softmax_grad(self, y: np.ndarray, dy: np.ndarray, dx: np.ndarray) -> None:
        y2 = _as_batch_rows(y)
        dy2 = _as_batch_rows(dy)
        inner = np.sum(dy2 * y2, axis=1, keepdims=True)
        dx[...] = (y2 * (dy2 - inner)).reshape(dx.shape)

    @_backend_op("log_softmax")
    def log_softmax(self, x: np.ndarray, out: np.ndarray) -> None:
        rows = _as_batch_rows(x)
        shifted = rows - rows.max(axis=1, keepdims=True)
        log_norm = np.log(np.exp(shifted).sum(axis=1, keepdims=True))
        out[...] = (shifted - log_norm).reshape(out.shape)

    @_backend_op("log_softmax_grad")
    def log_softmax_grad(self, y: np.ndarray, dy: np.ndarray, dx: np.ndarray) -> None:
        y2 = _as_batch_rows(y)
        dy2 = _as_batch_rows(dy)
        total = np.sum(dy2, axis=1, keepdims=True)
        dx[...] = (dy2 - np.exp(y2) * total).reshape(dx.shape)

    # ------------------------------------------------------------------
    # Convolution (im2col + GEMM)
    # ------------------------------------------------------------------
    @staticmethod
    def _conv_geometry(
        input_shape: Sequence[int], kernel: int, stride: int, padding: int
    ) -> Tuple[int, int, int, int]:
        _, c, h, w = (int(d) for d in input_shape)
        h_out = _out_size(h, kernel, stride, padding)
        w_out = _out_size(w, kernel, stride, padding)
        if h_out <= 0 or w_out <= 0:
            raise BackendError(
                "convolution",
                f"kernel {kernel} with padding {padding} does not fit input "
                f"{list(input_shape)}",
            )
        return c, kernel, h_out, w_out

    def convolution_workspace_size(
        self,
        input_shape: Sequence[int],
        filter_shape: Sequence[int],
        stride: int,
        padding: int,
    ) -> int:
        if len(input_shape) != 4:
            raise BackendError(
                "convolution",
                f"expected NCHW input, got shape {list(input_shape)}",
            )
        kernel = int(filter_shape[-1])
        c, k, h_out, w_out = self._conv_geometry(input_shape, kernel, stride, padding)
        return c * k * k * h_out * w_out * _FLOAT.itemsize

    def _columns(self, workspace: Any, x_shape: Sequence[int], k: int, s: int, p: int):
        c, _, h_out, w_out = self._conv_geometry(x_shape, k, s, p)
        return workspace.view(_FLOAT, (c * k * k, h_out * w_out)), h_out, w_out

    @_backend_op("convolution")
    def convolution(
        self,
        x: np.ndarray,
        w: np.ndarray,
        out: np.ndarray,
        workspace: Any,
        stride: int,
        padding: int,
    ) -> None:
        k = w.shape[-1]
        col, h_out, w_out = self._columns(workspace, x.shape, k, stride, padding)
        w_mat = w.reshape(w.shape[0], -1)
        for n in range(x.shape[0]):
            _im2col(x[n], col, k, stride, padding, h_out, w_out)
            out[n] = np.matmul(w_mat, col).reshape(out.shape[1:])

    @_backend_op("convolution_grad_data")
    def convolution_grad_data(
        self,
        w: np.ndarray,
        dy: np.ndarray,
        dx: np.ndarray,
        workspace: Any,
        stride: int,
        padding: int,
    ) -> None:
        k = w.shape[-1]
        col, h_out, w_out = self._columns(workspace, dx.shape, k, stride, padding)
        w_mat = w.reshape(w.shape[0], -1)
        for n in range(dx.shape[0]):
            np.matmul(w_mat.T, dy[n].reshape(w.shape[0], -1), out=col)
            _col2im(col, dx[n], k, stride, padding, h_out, w_out)

    @_backend_op("convolution_grad_filter")
    def convolution_grad_filter(
        self,
        x: np.ndarray,
        dy: np.ndarray,
        dw: np.ndarray,
        workspace: Any,
        stride: int,
        padding: int,
    ) -> None:
        k = dw.shape[-1]
        col, h_out, w_out = self._columns(workspace, x.shape, k, stride, padding)
        dw_mat = dw.reshape(dw.shape[0], -1)
        for n in range(x.shape[0]):
            _im2col(x[n], col, k, stride, padding, h_out, w_out)
            dw_mat += np.matmul(dy[n].reshape(dw.shape[0], -1), col.T)

    # ------------------------------------------------------------------
    # Pooling
    # ------------------------------------------------------------------
    def pooling_workspace_size(
        self, input_shape: Sequence[int], kernel: int, stride: int, padding: int
    ) -> int:
        if len(input_shape) != 4:
            raise BackendError(
                "pooling", f"expected NCHW input, got shape {list(input_shape)}"
            )
        n, c, h, w = (int(d) for d in input_shape)
        if _out_size(h, kernel, stride, padding) <= 0:
            raise BackendError(
                "pooling",
                f"kernel {kernel} does not fit input {list(input_shape)}",
            )
        return n * c * (h + 2 * padding) * (w + 2 * padding) * _FLOAT.itemsize

    @staticmethod
    def _padded(
        workspace: Any, x: np.ndarray, padding: int, fill: float
    ) -> np.ndarray:
        n, c, h, w = x.shape
        x_pad = workspace.view(_FLOAT, (n, c, h + 2 * padding, w + 2 * padding))
        x_pad.fill(fill)
        x_pad[:, :, padding : padding + h, padding : padding + w] = x
        return x_pad

    @_backend_op("pooling")
    def pooling(
        self,
        mode: str,
        x: np.ndarray,
        out: np.ndarray,
        workspace: Any,
        kernel: int,
        stride: int,
        padding: int,
    ) -> None:
        fill = -np.inf if mode == "max" else 0.0
        x_pad = self._padded(workspace, x, padding, fill)
        h_out, w_out = out.shape[2], out.shape[3]
        reduce = np.max if mode == "max" else np.mean
        for i in range(h_out):
            h0 = i * stride
            for j in range(w_out):
                w0 = j * stride
                window = x_pad[:, :, h0 : h0 + kernel, w0 : w0 + kernel]
                out[:, :, i, j] = reduce(window, axis=(2, 3))

    @_backend_op("pooling_grad")
    def pooling_grad(
        self,
        mode: str,
        x: np.ndarray,
        y: np.ndarray,
        dy: np.ndarray,
        dx: np.ndarray,
        workspace: Any,
        kernel: int,
        stride: int,
        padding: int,
    ) -> None:
        n, c, h, w = x.shape
        h_out, w_out = dy.shape[2], dy.shape[3]
        grad_pad = np.zeros((n, c, h + 2 * padding, w + 2 * padding), dtype=dx.dtype)

        if mode == "max":
            x_pad = self._padded(workspace, x, padding, -np.inf)
            for i in range(h_out):
                h0 = i * stride
                for j in range(w_out):
                    w0 = j * stride
                    window = x_pad[:, :, h0 : h0 + kernel, w0 : w0 + kernel]
                    flat = window.reshape(n, c, -1).argmax(axis=2)
                    rows = h0 + flat // kernel
                    cols = w0 + flat % kernel
                    nn, cc = np.meshgrid(np.arange(n), np.arange(c), indexing="ij")
                    np.add.at(grad_pad, (nn, cc, rows, cols), dy[:, :, i, j])
        else:
            area = float(kernel * kernel)
            for i in range(h_out):
                h0 = i * stride
                for j in range(w_out):
                    w0 = j * stride
                    grad_pad[:, :, h0 : h0 + kernel, w0 : w0 + kernel] += (
                        dy[:, :, i, j][:, :, None, None] / area
                    )

        dx[...] = grad_pad[:, :, padding : padding + h, padding : padding + w]

    def __repr__(self) -> str:
        return f"NumpyBackend(device={self._device!r})"


def output_spatial_size(size: int, kernel: int, stride: int, padding: int) -> int:
    """Spatial output length of a windowed operation."""
    return _out_size(size, kernel, stride, padding)
