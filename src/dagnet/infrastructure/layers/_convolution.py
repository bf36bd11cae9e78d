"""
2D convolution worker (NCHW).

The backend lowers convolution to GEMM with an im2col column matrix that
lives in the graph's shared workspace; `workspace_size` reports how many
bytes that matrix takes for the current input shape.

Weights
-------
0. filter `(num_output, C_in, k, k)`, Glorot-filled by default.
1. bias `(num_output,)` when `ConvolutionConfig.bias` is set.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from ...domain._backend import IComputeBackend
from ...domain._config import ConvolutionConfig, LayerType
from ...domain._errors import GraphConfigurationError
from ...domain._tensor import ISharedTensor
from ..backend._numpy_backend import output_spatial_size
from ._base import LayerWorker, register_layer


@register_layer(LayerType.CONVOLUTION)
class Convolution(LayerWorker):
    """Square-kernel convolution with symmetric stride and padding."""

    kind_config: ConvolutionConfig

    def __init__(self, kind_config: ConvolutionConfig, *, name: str = "") -> None:
        if not isinstance(kind_config, ConvolutionConfig):
            raise TypeError(f"Layer '{name}': Convolution requires a ConvolutionConfig")
        super().__init__(kind_config, name=name)
        self._spatial_ones = np.ones((1, 0), dtype=np.float32)

    @property
    def kernel(self) -> int:
        return self.kind_config.filter_shape[0]

    @property
    def stride(self) -> int:
        return self.kind_config.stride[0]

    @property
    def padding(self) -> int:
        return self.kind_config.padding[0]

    def num_weights(self) -> int:
        return 2 if self.kind_config.bias else 1

    def default_filler(self, weight_id: int) -> str:
        return "glorot" if weight_id == 0 else "constant"

    def _filter_shape(self, input_shape: Sequence[int]) -> tuple:
        return (self.kind_config.num_output, input_shape[1], self.kernel, self.kernel)

    def _check_input(self, input_shape: Sequence[int]) -> None:
        if len(input_shape) != 4:
            raise GraphConfigurationError(
                f"Layer '{self.name}' expects NCHW input, got shape "
                f"{list(input_shape)}",
                layer=self.name,
            )

    def reshape(
        self,
        backend: IComputeBackend,
        input_data: List[ISharedTensor],
        input_gradient: List[ISharedTensor],
        weights_data: List[ISharedTensor],
        weights_gradient: List[ISharedTensor],
        output_data: List[ISharedTensor],
        output_gradient: List[ISharedTensor],
    ) -> None:
        input_shape = input_data[0].shape
        self._check_input(input_shape)
        n, _, h, w = input_shape
        h_out = output_spatial_size(h, self.kernel, self.stride, self.padding)
        w_out = output_spatial_size(w, self.kernel, self.stride, self.padding)

        weight_shapes = [self._filter_shape(input_shape), (self.kind_config.num_output,)]
        for tensors in (weights_data, weights_gradient):
            for tensor, shape in zip(tensors, weight_shapes):
                tensor.resize(shape)

        out_shape = (n, self.kind_config.num_output, h_out, w_out)
        for tensor in (*output_data, *output_gradient):
            tensor.resize(out_shape)

        if self._spatial_ones.shape[1] != h_out * w_out:
            self._spatial_ones = np.ones((1, h_out * w_out), dtype=np.float32)

    def workspace_size(
        self, backend: IComputeBackend, input_shapes: Sequence[Sequence[int]]
    ) -> int:
        input_shape = input_shapes[0]
        self._check_input(input_shape)
        return backend.convolution_workspace_size(
            input_shape, self._filter_shape(input_shape), self.stride, self.padding
        )

    def compute_output(self, backend, weights_data, input_data, output_data):
        y = output_data[0].data
        backend.convolution(
            input_data[0].data,
            weights_data[0].data,
            y,
            self.workspace,
            self.stride,
            self.padding,
        )
        if self.num_weights() > 1:
            bias = weights_data[1].data.reshape(-1, 1)
            for n in range(y.shape[0]):
                y_n = y[n].reshape(y.shape[1], -1)
                backend.gemm(1.0, bias, False, self._spatial_ones, False, 1.0, y_n)
        return None

    def compute_input_gradient(
        self,
        backend,
        weights_data,
        output_data,
        output_gradients,
        input_data,
        input_gradients,
    ):
        backend.convolution_grad_data(
            weights_data[0].data,
            output_gradients[0].data,
            input_gradients[0].data,
            self.workspace,
            self.stride,
            self.padding,
        )

    def compute_parameters_gradient(
        self,
        backend,
        output_data,
        output_gradients,
        input_data,
        weights_gradients,
    ):
        dy = output_gradients[0].data
        backend.convolution_grad_filter(
            input_data[0].data,
            dy,
            weights_gradients[0].data,
            self.workspace,
            self.stride,
            self.padding,
        )
        if self.num_weights() > 1:
            db = weights_gradients[1].data.reshape(-1, 1)
            for n in range(dy.shape[0]):
                dy_n = dy[n].reshape(dy.shape[1], -1)
                backend.gemm(1.0, dy_n, False, self._spatial_ones, True, 1.0, db)
