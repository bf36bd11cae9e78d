"""
Layer worker interface definitions.

A *worker* is the kind-specific part of a layer: it knows how to size its
outputs and weights from its inputs, how much scratch space it needs, and how
to call the compute backend for the three compute operations. Everything
about names, wiring and backprop scheduling lives in the graph's `Layer`
wrapper, which drives a worker through this protocol.

Tensor arguments are lists of shared tensors in declaration order.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

from ._backend import IComputeBackend
from ._config import LayerCapabilities, WeightConfig
from ._tensor import ISharedTensor


@runtime_checkable
class ILayerWorker(Protocol):
    """
    Domain-level contract for the compute part of a layer.

    Notes
    -----
    - `compute_output` may return a float: containers report the loss of their
      nested graph this way. Plain layers return None.
    - `compute_parameters_gradient` must *accumulate* into the weight
      gradients, because shared weights receive contributions from several
      layers within one backward pass.
    """

    @property
    def capabilities(self) -> LayerCapabilities:
        """Static capability record of the worker's kind."""
        ...

    def num_weights(self) -> int:
        """Number of learnable weight tensors the worker owns."""
        ...

    def is_loss(self) -> bool:
        """Whether the worker computes a loss."""
        ...

    def loss_weight(self, output_id: int) -> Optional[float]:
        """Default loss weight of an output, or None if it is not a loss."""
        ...

    def allow_force_backward(self, input_id: int) -> bool:
        """Whether a gradient may be forced into the given input."""
        ...

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
        """Resize outputs and weights to match the current input shapes."""
        ...

    def fill_weights(
        self, weights_data: List[ISharedTensor], configs: Sequence[WeightConfig]
    ) -> None:
        """Initialize freshly allocated weights."""
        ...

    def workspace_size(
        self, backend: IComputeBackend, input_shapes: Sequence[Sequence[int]]
    ) -> int:
        """Bytes of scratch space needed for the given input shapes."""
        ...

    def set_workspace(self, workspace: Any) -> None:
        """Hand the graph-wide shared workspace to the worker."""
        ...

    def compute_output(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        input_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
    ) -> Optional[float]: ...

    def compute_input_gradient(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
        output_gradients: List[ISharedTensor],
        input_data: List[ISharedTensor],
        input_gradients: List[ISharedTensor],
    ) -> None: ...

    def compute_parameters_gradient(
        self,
        backend: IComputeBackend,
        output_data: List[ISharedTensor],
        output_gradients: List[ISharedTensor],
        input_data: List[ISharedTensor],
        weights_gradients: List[ISharedTensor],
    ) -> None: ...
