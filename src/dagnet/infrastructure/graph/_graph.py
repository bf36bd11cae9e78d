"""
Graph assembly.

`Graph` turns one `SequentialConfig` into wired layers, in four passes that
share an explicit `TensorRegistry` and `WeightRegistry` (both scoped to this
graph, never global):

1. Wiring: complete link names, then `Layer.connect` every layer in order.
   Weight sharing is resolved inside `connect`, one layer at a time.
2. Backprop analysis on a snapshot of the wired layers, optionally forced.
3. Gradient routing for tensors read by several layers: one consumer
   writes the gradient, the others add to it. Loss-weighted tensors are
   seeded with their weight before backward, so every reader adds.
4. Workspace sizing: one `SharedWorkspace`, grown to the largest request,
   handed to every layer.

Nested graphs (built by `Sequential` container layers) adopt their parent's
input tensors and share the parent's workspace.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ...domain._backend import IComputeBackend
from ...domain._config import SequentialConfig
from ..tensor._registry import TensorPair, TensorRegistry
from ..tensor._workspace import SharedWorkspace
from ._backprop import BackpropPlan, BackpropState, plan_backprop
from ._layer import Layer
from ._weights import LearnableWeight, WeightEntry, WeightRegistry
from ._wiring import resolve_sequential

logger = logging.getLogger(__name__)


class Graph:
    """
    A wired, analyzed and workspace-sized layer graph.

    Parameters
    ----------
    config : SequentialConfig
        Layers in execution order and the external inputs.
    backend : IComputeBackend
        Backend used for shape inference and workspace queries.
    name : str, optional
        Used in logs and diagnostics.
    external_inputs : Optional[Sequence[tuple[str, TensorPair]]]
        Pre-existing pairs to use as the external inputs instead of
        allocating from `config.inputs`. Used by container layers.
    workspace : Optional[SharedWorkspace]
        Workspace to size and share. A new one is created when omitted.
    allocate_workspace : bool, optional
        Size the workspace at the end of assembly. Nested graphs skip this;
        their container reports the requirement to the parent instead.
    """

    def __init__(
        self,
        config: SequentialConfig,
        backend: IComputeBackend,
        *,
        name: str = "graph",
        external_inputs: Optional[Sequence[Tuple[str, TensorPair]]] = None,
        workspace: Optional[SharedWorkspace] = None,
        allocate_workspace: bool = True,
    ) -> None:
        self.config = config
        self.name = name
        self.registry = TensorRegistry()
        self.weights = WeightRegistry()
        self.workspace = workspace if workspace is not None else SharedWorkspace()
        self.layers: List[Layer] = []
        self.input_pairs: List[TensorPair] = []
        self.input_names: List[str] = []
        self.output_pairs: List[TensorPair] = []
        self.plan: Optional[BackpropPlan] = None

        self._wire(backend, external_inputs)
        self.analyze_backprop(force=config.force_backward)
        if allocate_workspace:
            self.size_workspace(backend)

    # ------------------------------------------------------------------
    # Assembly passes
    # ------------------------------------------------------------------
    def _wire(
        self,
        backend: IComputeBackend,
        external_inputs: Optional[Sequence[Tuple[str, TensorPair]]],
    ) -> None:
        if external_inputs is not None:
            for input_name, pair in external_inputs:
                self.registry.adopt(input_name, pair, None)
                self.input_names.append(input_name)
                self.input_pairs.append(pair)
        else:
            for input_name, shape in self.config.inputs:
                pair = self.registry.register(input_name, shape)
                self.input_names.append(input_name)
                self.input_pairs.append(pair)
        logger.info("%s inputs: %s", self.name, self.input_names)

        resolved = resolve_sequential(self.config.layers, self.input_names)
        for index, layer_config in enumerate(resolved):
            layer = Layer(layer_config, index)
            layer.connect(self.registry, self.weights, backend)
            self.layers.append(layer)

        if self.layers:
            self.output_pairs = list(self.layers[-1].outputs)
        logger.info(
            "%s outputs: %s",
            self.name,
            self.layers[-1].output_keys if self.layers else [],
        )

    def snapshot(self) -> BackpropState:
        """Immutable view of the wired layers for the analyzer."""
        return BackpropState(
            layer_names=tuple(layer.name for layer in self.layers),
            is_loss=tuple(
                layer.worker.is_loss() or any(layer.loss_weights)
                for layer in self.layers
            ),
            inputs=tuple(tuple(layer.input_keys) for layer in self.layers),
            outputs=tuple(tuple(layer.output_keys) for layer in self.layers),
            propagate_down=tuple(
                layer.declared_propagate_down for layer in self.layers
            ),
            needs_backward=tuple(
                layer.initial_needs_backward for layer in self.layers
            ),
            allow_force_backward=tuple(
                tuple(
                    layer.worker.allow_force_backward(i)
                    for i in range(len(layer.inputs))
                )
                for layer in self.layers
            ),
        )

    def analyze_backprop(
        self, *, force: bool = False, under_loss: Sequence[str] = ()
    ) -> BackpropPlan:
        """
        Decide `needs_backward` / `propagate_down` for every layer.

        Container layers re-run the analysis on their nested graph, seeded
        with its outputs when the container itself runs backward.
        """
        plan = plan_backprop(self.snapshot(), force=force, under_loss=under_loss)
        for layer, needs, flags in zip(
            self.layers, plan.needs_backward, plan.propagate_down
        ):
            layer.needs_backward = needs
            layer.propagate_down = list(flags)
            logger.info("%s needs backward computation: %s", layer.name, needs)
            if layer.capabilities.container:
                layer.worker.plan_backprop(needs, flags, force)
        self.plan = plan
        self.route_shared_gradients()
        return plan

    def route_shared_gradients(self) -> None:
        """
        Pick, per multiply-read tensor, which readers add their gradient.

        A loss-weighted tensor already holds its seed when the sweep starts,
        so none of its readers may overwrite it, even a single one.
        """
        for layer in self.layers:
            layer.clear_gradient_routing()
        uses: Dict[str, List[Tuple[Layer, int]]] = {}
        for layer in self.layers:
            for input_id, key in enumerate(layer.input_keys):
                uses.setdefault(key, []).append((layer, input_id))

        seeded = {key for layer in self.layers for key in layer.seeded_outputs}
        for key, consumers in uses.items():
            if len(consumers) < 2 and key not in seeded:
                continue
            last_writer = max(
                (layer.index for layer, i in consumers if i in layer.in_place_outputs),
                default=-1,
            )
            writer_found = key in seeded
            for layer, input_id in reversed(consumers):
                if input_id in layer.in_place_outputs:
                    continue
                if (
                    not writer_found
                    and layer.index > last_writer
                    and layer.needs_backward
                    and layer.propagate_down[input_id]
                ):
                    writer_found = True
                    continue
                layer.accumulate_input_gradient(input_id)
            logger.debug("gradient of %s is summed over %d readers", key, len(consumers))

    def workspace_requirement(self, backend: IComputeBackend) -> int:
        """Largest workspace request of any layer for the current shapes."""
        return max((layer.workspace_size(backend) for layer in self.layers), default=0)

    def size_workspace(self, backend: IComputeBackend) -> int:
        """Grow the shared workspace to the largest request and hand it out."""
        for layer in self.layers:
            self.workspace.reserve(layer.workspace_size(backend))
        self.set_workspace(self.workspace)
        return self.workspace.size

    def set_workspace(self, workspace: SharedWorkspace) -> None:
        self.workspace = workspace
        for layer in self.layers:
            layer.set_workspace(workspace)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def reshape(self, backend: IComputeBackend, *, size_workspace: bool = True) -> None:
        """Propagate new input shapes through every layer."""
        for layer in self.layers:
            layer.reshape(backend)
        if size_workspace:
            self.size_workspace(backend)

    def forward(self, backend: IComputeBackend) -> float:
        if not self.layers:
            return 0.0
        return self.forward_from_to(backend, 0, len(self.layers) - 1)

    def backward(self, backend: IComputeBackend) -> None:
        if self.layers:
            self.backward_from_to(backend, len(self.layers) - 1, 0)

    def _check_layer_index(self, index: int) -> None:
        if not 0 <= index < len(self.layers):
            raise IndexError(
                f"Layer index {index} out of range for {self.name} "
                f"with {len(self.layers)} layers"
            )

    def forward_from_to(self, backend: IComputeBackend, start: int, end: int) -> float:
        """
        Run layers `start` through `end` (inclusive) and return their loss.

        Raises
        ------
        IndexError
            If either index is outside the graph.
        ValueError
            If `start` comes after `end`.
        """
        self._check_layer_index(start)
        self._check_layer_index(end)
        if start > end:
            raise ValueError(f"Forward range {start}..{end} runs backwards")
        loss = 0.0
        for layer in self.layers[start : end + 1]:
            loss += layer.forward(backend)
        return loss

    def backward_from_to(self, backend: IComputeBackend, start: int, end: int) -> None:
        """
        Run the backward pass from layer `start` down to layer `end` (inclusive).

        Loss-weighted outputs of the layers in range are seeded first.

        Raises
        ------
        IndexError
            If either index is outside the graph.
        ValueError
            If `start` comes before `end`.
        """
        self._check_layer_index(start)
        self._check_layer_index(end)
        if start < end:
            raise ValueError(f"Backward range {start}..{end} runs forwards")
        span = self.layers[end : start + 1]
        for layer in span:
            layer.seed_loss_gradients()
        for layer in reversed(span):
            layer.backward(backend)

    def synchronize(self, device: str) -> None:
        for layer in self.layers:
            layer.synchronize(device)
        for _, inner in self.children():
            inner.synchronize(device)

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------
    def children(self) -> Iterator[Tuple[Layer, "Graph"]]:
        for layer in self.layers:
            inner = getattr(layer.worker, "inner_graph", None)
            if inner is not None:
                yield layer, inner

    def weight_entries(self) -> List[WeightEntry]:
        entries = self.weights.entries
        for _, inner in self.children():
            entries.extend(inner.weight_entries())
        return entries

    def learnable_weights(self) -> List[LearnableWeight]:
        weights = self.weights.learnable_weights()
        for _, inner in self.children():
            weights.extend(inner.learnable_weights())
        return weights

    def has_learnable_weights(self) -> bool:
        return bool(self.learnable_weights())

    def clear_weight_gradients(self) -> None:
        for weight in self.learnable_weights():
            weight.gradient.fill(0.0)

    def update_weights(self, backend: IComputeBackend) -> None:
        for weight in self.learnable_weights():
            backend.axpy(-1.0, weight.gradient.data, weight.data.data)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def layer(self, name: str) -> Layer:
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(f"No layer named {name!r} in {self.name}")

    def is_loss(self) -> bool:
        return any(
            layer.worker.is_loss() or any(layer.loss_weights) for layer in self.layers
        )

    def __repr__(self) -> str:
        return f"Graph(name={self.name!r}, layers={[l.name for l in self.layers]})"
