"""
2D pooling worker (NCHW), max or average over a square window.

Max pooling pads with -inf so padded cells never win; average pooling pads
with zeros and divides by the full window area.
"""

from __future__ import annotations

from typing import List, Sequence

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType, PoolingConfig
from ...domain._errors import GraphConfigurationError
from ...domain._tensor import ISharedTensor
from ..backend._numpy_backend import output_spatial_size
from ._base import LayerWorker, register_layer


@register_layer(LayerType.POOLING)
class Pooling(LayerWorker):
    kind_config: PoolingConfig

    def __init__(self, kind_config: PoolingConfig, *, name: str = "") -> None:
        if not isinstance(kind_config, PoolingConfig):
            raise TypeError(f"Layer '{name}': Pooling requires a PoolingConfig")
        super().__init__(kind_config, name=name)

    @property
    def mode(self) -> str:
        return self.kind_config.mode.value

    @property
    def kernel(self) -> int:
        return self.kind_config.filter_shape[0]

    @property
    def stride(self) -> int:
        return self.kind_config.stride[0]

    @property
    def padding(self) -> int:
        return self.kind_config.padding[0]

    def _output_shape(self, input_shape: Sequence[int]) -> tuple:
        if len(input_shape) != 4:
            raise GraphConfigurationError(
                f"Layer '{self.name}' expects NCHW input, got shape "
                f"{list(input_shape)}",
                layer=self.name,
            )
        n, c, h, w = input_shape
        h_out = output_spatial_size(h, self.kernel, self.stride, self.padding)
        w_out = output_spatial_size(w, self.kernel, self.stride, self.padding)
        if h_out <= 0 or w_out <= 0:
            raise GraphConfigurationError(
                f"Layer '{self.name}': pooling window {self.kernel} does not fit "
                f"input shape {list(input_shape)}",
                layer=self.name,
            )
        return (n, c, h_out, w_out)

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
        out_shape = self._output_shape(input_data[0].shape)
        for tensor in (*output_data, *output_gradient):
            tensor.resize(out_shape)

    def workspace_size(
        self, backend: IComputeBackend, input_shapes: Sequence[Sequence[int]]
    ) -> int:
        return backend.pooling_workspace_size(
            input_shapes[0], self.kernel, self.stride, self.padding
        )

    def compute_output(self, backend, weights_data, input_data, output_data):
        backend.pooling(
            self.mode,
            input_data[0].data,
            output_data[0].data,
            self.workspace,
            self.kernel,
            self.stride,
            self.padding,
        )
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
        backend.pooling_grad(
            self.mode,
            input_data[0].data,
            output_data[0].data,
            output_gradients[0].data,
            input_gradients[0].data,
            self.workspace,
            self.kernel,
            self.stride,
            self.padding,
        )
