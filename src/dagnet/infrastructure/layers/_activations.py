"""
Shape-preserving activation workers: ReLU, Sigmoid, TanH, Softmax and
LogSoftmax.

The output always keeps the input shape.
ReLU and TanH may run in place; their gradient only needs the output, which
is still available after the input has been overwritten.
"""

from __future__ import annotations

from typing import ClassVar, List

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType
from ...domain._tensor import ISharedTensor
from ._base import LayerWorker, register_layer, resize_like


class _PointwiseWorker(LayerWorker):
    forward_op: ClassVar[str]
    gradient_op: ClassVar[str]

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
        shape = input_data[0].shape
        resize_like(output_data, shape)
        resize_like(output_gradient, shape)

    def compute_output(self, backend, weights_data, input_data, output_data):
        getattr(backend, self.forward_op)(input_data[0].data, output_data[0].data)
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
        getattr(backend, self.gradient_op)(
            output_data[0].data, output_gradients[0].data, input_gradients[0].data
        )


@register_layer(LayerType.RELU)
class ReLU(_PointwiseWorker):
    forward_op = "relu"
    gradient_op = "relu_grad"


@register_layer(LayerType.SIGMOID)
class Sigmoid(_PointwiseWorker):
    forward_op = "sigmoid"
    gradient_op = "sigmoid_grad"


@register_layer(LayerType.TANH)
class TanH(_PointwiseWorker):
    forward_op = "tanh"
    gradient_op = "tanh_grad"


@register_layer(LayerType.SOFTMAX)
class Softmax(_PointwiseWorker):
    """Softmax over all non-batch dimensions."""

    forward_op = "softmax"
    gradient_op = "softmax_grad"


@register_layer(LayerType.LOG_SOFTMAX)
class LogSoftmax(_PointwiseWorker):
    """Log-softmax over all non-batch dimensions."""

    forward_op = "log_softmax"
    gradient_op = "log_softmax_grad"
