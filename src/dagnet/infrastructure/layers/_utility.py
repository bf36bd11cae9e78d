"""
Shape utility workers: Reshape and Flatten.

Both copy their input into an output of a different shape with the same
element count, and copy the gradient back unchanged.
"""

from __future__ import annotations

from math import prod
from typing import List, Sequence

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType, ReshapeConfig
from ...domain._errors import GraphConfigurationError
from ...domain._tensor import ISharedTensor
from ._base import LayerWorker, register_layer


class _CopyWorker(LayerWorker):
    def target_shape(self, input_shape: Sequence[int]) -> tuple:
        raise NotImplementedError

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
        shape = self.target_shape(input_shape)
        if prod(shape) != prod(input_shape):
            raise GraphConfigurationError(
                f"Layer '{self.name}' cannot reshape {list(input_shape)} into "
                f"{list(shape)}",
                layer=self.name,
            )
        for tensor in (*output_data, *output_gradient):
            tensor.resize(shape)

    def compute_output(self, backend, weights_data, input_data, output_data):
        output_data[0].write(input_data[0].data)
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
        input_gradients[0].write(output_gradients[0].data)


@register_layer(LayerType.RESHAPE)
class Reshape(_CopyWorker):
    """Reshape to `ReshapeConfig.shape` (batch dimension included)."""

    kind_config: ReshapeConfig

    def __init__(self, kind_config: ReshapeConfig, *, name: str = "") -> None:
        if not isinstance(kind_config, ReshapeConfig):
            raise TypeError(f"Layer '{name}': Reshape requires a ReshapeConfig")
        super().__init__(kind_config, name=name)

    def target_shape(self, input_shape: Sequence[int]) -> tuple:
        return tuple(self.kind_config.shape)


@register_layer(LayerType.FLATTEN)
class Flatten(_CopyWorker):
    """(N, d1, d2, ...) -> (N, d1 * d2 * ...)"""

    def target_shape(self, input_shape: Sequence[int]) -> tuple:
        if not input_shape:
            return (1, 1)
        return (input_shape[0], prod(input_shape[1:]))
