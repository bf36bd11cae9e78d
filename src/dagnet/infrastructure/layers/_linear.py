"""
Fully-connected layer worker.

The input is viewed as a `(N, prod(input.shape[1:]))` matrix, so a linear
layer can follow a convolution or an image-shaped input directly. The weight
is stored as `(output_size, in_features)` and the output has shape
`(N, output_size)`.

Weights
-------
0. weight, Glorot-filled by default.
1. bias `(output_size,)`, present only when `LinearConfig.bias` is set,
   constant-filled (0.0) by default.
"""

from __future__ import annotations

from math import prod
from typing import List

import numpy as np

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType, LinearConfig
from ...domain._tensor import ISharedTensor
from ._base import LayerWorker, register_layer


@register_layer(LayerType.LINEAR)
class Linear(LayerWorker):
    """
    y = x @ W.T (+ b)

    Parameter gradients are accumulated into the weight gradients.
    """

    kind_config: LinearConfig

    def __init__(self, kind_config: LinearConfig, *, name: str = "") -> None:
        if not isinstance(kind_config, LinearConfig):
            raise TypeError(f"Layer '{name}': Linear requires a LinearConfig")
        super().__init__(kind_config, name=name)
        self._bias_multiplier = np.ones((0, 1), dtype=np.float32)

    @property
    def output_size(self) -> int:
        return self.kind_config.output_size

    def num_weights(self) -> int:
        return 2 if self.kind_config.bias else 1

    def default_filler(self, weight_id: int) -> str:
        return "glorot" if weight_id == 0 else "constant"

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
        batch = input_shape[0] if input_shape else 1
        in_features = prod(input_shape[1:])

        weight_shapes = [(self.output_size, in_features), (self.output_size,)]
        for tensors in (weights_data, weights_gradient):
            for tensor, shape in zip(tensors, weight_shapes):
                tensor.resize(shape)

        for tensor in (*output_data, *output_gradient):
            tensor.resize((batch, self.output_size))

        if self._bias_multiplier.shape[0] != batch:
            self._bias_multiplier = np.ones((batch, 1), dtype=np.float32)

    def _input_matrix(self, tensor: ISharedTensor) -> np.ndarray:
        data = tensor.data
        batch = data.shape[0] if data.ndim else 1
        return data.reshape(batch, -1)

    def compute_output(self, backend, weights_data, input_data, output_data):
        x = self._input_matrix(input_data[0])
        y = output_data[0].data
        backend.gemm(1.0, x, False, weights_data[0].data, True, 0.0, y)
        if self.num_weights() > 1:
            bias = weights_data[1].data.reshape(1, -1)
            backend.gemm(1.0, self._bias_multiplier, False, bias, False, 1.0, y)
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
        dy = output_gradients[0].data
        dx = self._input_matrix(input_gradients[0])
        backend.gemm(1.0, dy, False, weights_data[0].data, False, 0.0, dx)

    def compute_parameters_gradient(
        self,
        backend,
        output_data,
        output_gradients,
        input_data,
        weights_gradients,
    ):
        dy = output_gradients[0].data
        x = self._input_matrix(input_data[0])
        backend.gemm(1.0, dy, True, x, False, 1.0, weights_gradients[0].data)
        if self.num_weights() > 1:
            db = weights_gradients[1].data.reshape(1, -1)
            backend.gemm(1.0, self._bias_multiplier, True, dy, False, 1.0, db)
