"""
Wired layer.

`Layer` joins a declaration (`LayerConfig`) to its worker and to the tensors
the wiring pass resolved for it. It owns everything name-related:

- `connect` checks arity, resolves input names in the tensor registry,
  registers outputs (continuing a tensor in place when an output repeats the
  input name at the same position), sizes outputs and weights through the
  worker, fills fresh weights and declares them in the weight registry.
- `forward` / `backward` drive the worker and tag backend failures with the
  layer name and the failing operation.

Each loss-weighted output keeps its weight in a buffer of its own shape, so
the loss contribution of a layer is `dot(output.data, weights)`. Before a
backward sweep `seed_loss_gradients` copies that buffer into the output
gradient; layers reading the tensor then add their gradient to the seed, and
a loss layer reads its scale from there.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from ...domain._backend import IComputeBackend
from ...domain._config import LayerCapabilities, LayerConfig
from ...domain._errors import ArityMismatchError, BackendError, DuplicateProducerError
from ..layers._base import LayerWorker, create_worker
from ..tensor._registry import TensorPair, TensorRegistry
from ..tensor._shared_tensor import SharedTensor
from ._weights import WeightHandle, WeightRegistry

logger = logging.getLogger(__name__)


def _check_arity(
    layer: str, direction: str, actual: int, exact: Optional[int], minimum: int
) -> None:
    if exact is not None and actual != exact:
        raise ArityMismatchError(layer, direction, f"exactly {exact}", actual)
    if actual < minimum:
        raise ArityMismatchError(layer, direction, f"at least {minimum}", actual)


class Layer:
    """
    A layer declaration bound to its worker and tensors.

    Parameters
    ----------
    config : LayerConfig
        Declaration with every link name resolved.
    index : int
        Position in the graph's execution order.
    """

    def __init__(self, config: LayerConfig, index: int) -> None:
        self.config = config
        self.name = config.name
        self.index = index
        self.worker: LayerWorker = create_worker(config)

        self.inputs: List[TensorPair] = []
        self.outputs: List[TensorPair] = []
        self.input_keys: List[str] = []
        self.output_keys: List[str] = []
        self.in_place_outputs: List[int] = []

        self.weights_data: List[SharedTensor] = []
        self.weights_gradient: List[SharedTensor] = []
        self.weight_handles: List[WeightHandle] = []

        self.loss_weights: List[float] = []
        self.loss_weight_buffers: Dict[int, SharedTensor] = {}
        self.propagate_down: List[bool] = []
        self.needs_backward: bool = False
        self.declared_propagate_down: tuple = ()
        self.initial_needs_backward: bool = False

        # Inputs whose gradient is summed over several consumers.
        self._gradient_scratch: Dict[int, SharedTensor] = {}

    @property
    def capabilities(self) -> LayerCapabilities:
        return self.worker.capabilities

    @property
    def layer_type(self):
        return self.config.layer_type

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------
    def connect(
        self,
        registry: TensorRegistry,
        weights: WeightRegistry,
        backend: IComputeBackend,
    ) -> None:
        """
        Resolve this layer's tensors and weights.

        Raises
        ------
        ArityMismatchError
            If the input or output count violates the kind's constraints.
        UnknownInputTensorError
            If an input name was never produced.
        DuplicateProducerError
            If an output name is already produced and this layer does not
            continue it in place.
        DimensionMismatchError, SharedWeightConflictError
            From weight sharing.
        """
        caps = self.capabilities
        logger.info("Creating layer %s", self.name)

        _check_arity(
            self.name,
            "input",
            len(self.config.inputs),
            caps.exact_num_inputs,
            caps.min_num_inputs,
        )
        for input_id, name in enumerate(self.config.inputs):
            self.inputs.append(registry.consume(name, self.name))
            self.input_keys.append(name)
            self.propagate_down.append(self.config.propagate_down_for(input_id))
            logger.info("%s -> %s", name, self.name)

        if caps.container:
            self._connect_container(registry, backend)
        else:
            self._connect_outputs(registry)

        _check_arity(
            self.name,
            "output",
            len(self.outputs),
            caps.exact_num_outputs,
            caps.min_num_outputs,
        )

        for output_id in range(len(self.outputs)):
            override = self.config.loss_weight_override(output_id)
            if override is None:
                override = self.worker.loss_weight(output_id)
            self.loss_weights.append(0.0 if override is None else float(override))
            if self.loss_weights[-1]:
                self.loss_weight_buffers[output_id] = SharedTensor()

        for _ in range(self.worker.num_weights()):
            self.weights_data.append(SharedTensor())
            self.weights_gradient.append(SharedTensor())

        self.reshape(backend)
        self.worker.fill_weights(self.weights_data, self.config.weights)

        for weight_id in range(self.worker.num_weights()):
            handle = weights.declare(
                self.index,
                weight_id,
                self.weights_data[weight_id],
                self.weights_gradient[weight_id],
                self.config.weight_config(weight_id),
                self.name,
            )
            self.weight_handles.append(handle)

        self.declared_propagate_down = tuple(self.propagate_down)
        self.initial_needs_backward = (
            any(self.propagate_down) or self.has_learnable_weights()
        )
        self.needs_backward = self.initial_needs_backward

    def _connect_outputs(self, registry: TensorRegistry) -> None:
        caps = self.capabilities
        for output_id, name in enumerate(self.config.outputs):
            in_place = (
                output_id < len(self.input_keys) and self.input_keys[output_id] == name
            )
            if in_place and not caps.in_place:
                raise DuplicateProducerError(self.name, name)
            pair = registry.register(name, producer=self.name, in_place=in_place)
            self.outputs.append(pair)
            self.output_keys.append(name)
            if in_place:
                self.in_place_outputs.append(output_id)
            logger.info("%s -> %s", self.name, name)

        if caps.auto_outputs:
            while len(self.outputs) < caps.required_outputs():
                pair = registry.register_anonymous(producer=self.name)
                self.outputs.append(pair)
                self.output_keys.append(pair.name)

    def _connect_container(
        self, registry: TensorRegistry, backend: IComputeBackend
    ) -> None:
        inner_outputs = self.worker.build(
            backend, list(zip(self.input_keys, self.inputs))
        )
        declared = self.config.outputs
        if len(declared) > len(inner_outputs):
            raise ArityMismatchError(
                self.name, "output", f"at most {len(inner_outputs)}", len(declared)
            )
        for output_id, pair in enumerate(inner_outputs):
            if output_id < len(declared):
                registry.adopt(declared[output_id], pair, self.name)
                self.output_keys.append(declared[output_id])
                logger.info("%s -> %s", self.name, declared[output_id])
            else:
                self.output_keys.append(pair.name)
            self.outputs.append(pair)

    def has_learnable_weights(self) -> bool:
        has = getattr(self.worker, "has_learnable_weights", None)
        if callable(has):
            return bool(has())
        return self.worker.num_weights() > 0

    def accumulate_input_gradient(self, input_id: int) -> None:
        """Sum this layer's gradient for `input_id` into the shared buffer."""
        if input_id in self.in_place_outputs:
            return
        self._gradient_scratch[input_id] = SharedTensor(self.inputs[input_id].shape)

    def clear_gradient_routing(self) -> None:
        self._gradient_scratch.clear()

    @property
    def accumulating_inputs(self) -> List[int]:
        return sorted(self._gradient_scratch)

    # ------------------------------------------------------------------
    # Shapes and workspace
    # ------------------------------------------------------------------
    def reshape(self, backend: IComputeBackend) -> None:
        """Resize outputs, weights and scratch for the current input shapes."""
        self.worker.reshape(
            backend,
            [p.data for p in self.inputs],
            [p.gradient for p in self.inputs],
            self.weights_data,
            self.weights_gradient,
            [p.data for p in self.outputs],
            [p.gradient for p in self.outputs],
        )
        for input_id, scratch in self._gradient_scratch.items():
            scratch.resize(self.inputs[input_id].shape)
        for output_id, buffer in self.loss_weight_buffers.items():
            buffer.resize(self.outputs[output_id].shape)
            buffer.fill(self.loss_weights[output_id])

    def workspace_size(self, backend: IComputeBackend) -> int:
        return int(self.worker.workspace_size(backend, [p.shape for p in self.inputs]))

    def set_workspace(self, workspace: Any) -> None:
        self.worker.set_workspace(workspace)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _run(self, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except BackendError as e:
            if e.layer is not None:
                raise
            raise BackendError(
                e.kind, e.message, layer=self.name, operation=operation
            ) from e

    def forward(self, backend: IComputeBackend) -> float:
        """Compute outputs; return this layer's loss contribution."""
        inner_loss = self._run(
            "compute_output",
            lambda: self.worker.compute_output(
                backend,
                self.weights_data,
                [p.data for p in self.inputs],
                [p.data for p in self.outputs],
            ),
        )
        loss = float(inner_loss) if inner_loss is not None else 0.0
        for output_id, buffer in self.loss_weight_buffers.items():
            loss += backend.dot(self.outputs[output_id].data.data, buffer.data)
        return loss

    def seed_loss_gradients(self) -> None:
        """Reset each loss-weighted output gradient to its loss weight."""
        for output_id, buffer in self.loss_weight_buffers.items():
            self.outputs[output_id].gradient.copy_from_numpy(buffer.data)

    @property
    def seeded_outputs(self) -> List[str]:
        return [self.output_keys[i] for i in sorted(self.loss_weight_buffers)]

    def backward(self, backend: IComputeBackend) -> None:
        """
        Input gradients, then parameter gradients.

        No-op unless `needs_backward`. Parameter gradients are accumulated.
        """
        if not self.needs_backward:
            return

        if any(self.propagate_down) or self.capabilities.container:
            gradients = [
                self._gradient_scratch.get(i, p.gradient)
                for i, p in enumerate(self.inputs)
            ]
            self._run(
                "compute_input_gradient",
                lambda: self.worker.compute_input_gradient(
                    backend,
                    self.weights_data,
                    [p.data for p in self.outputs],
                    [p.gradient for p in self.outputs],
                    [p.data for p in self.inputs],
                    gradients,
                ),
            )
            for input_id, scratch in self._gradient_scratch.items():
                if self.propagate_down[input_id]:
                    backend.axpy(
                        1.0, scratch.data, self.inputs[input_id].gradient.data
                    )

        if self.weights_gradient:
            self._run(
                "compute_parameters_gradient",
                lambda: self.worker.compute_parameters_gradient(
                    backend,
                    [p.data for p in self.outputs],
                    [p.gradient for p in self.outputs],
                    [p.data for p in self.inputs],
                    self.weights_gradient,
                ),
            )

    def synchronize(self, device: str) -> None:
        for pair in self.outputs:
            pair.data.sync(device)
            pair.gradient.sync(device)

    def input_shapes(self) -> List[Sequence[int]]:
        return [p.shape for p in self.inputs]

    def __repr__(self) -> str:
        return (
            f"Layer(name={self.name!r}, kind={self.layer_type.value}, "
            f"inputs={self.input_keys}, outputs={self.output_keys})"
        )
