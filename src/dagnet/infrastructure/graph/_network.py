"""
Execution driver.

`Network` owns one assembled `Graph` and runs it. Its methods are dispatched
on the network's state with control paths:

    UNWIRED --assemble--> WIRED --bind_inputs / forward(inputs)--> READY

Each public method is registered for the states in which it is legal. Calling
it in any other state raises `GraphStateError` before anything runs.

Assembly is transactional: the graph is built first and only stored, and the
state only advanced, when every pass succeeded.

Every forward and backward sweep ends with a single backend synchronization
followed by a device sync of the graph's tensors; nothing synchronizes per
layer.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

import numpy as np

from ...domain._backend import IComputeBackend
from ...domain._config import SequentialConfig
from ...domain._errors import GraphStateError
from ...domain.utils._control_path import create_path_builder
from ..backend import NumpyBackend
from ..tensor._registry import TensorPair
from ..tensor._shared_tensor import SharedTensor
from ._diagnostics import WiringReport, build_report
from ._graph import Graph
from ._weights import LearnableWeight

logger = logging.getLogger(__name__)

network_control_path = create_path_builder()

InputArrays = Union[Sequence[Any], Mapping[str, Any]]


class GraphState(Enum):
    UNWIRED = "unwired"
    WIRED = "wired"
    READY = "ready"


class Network:
    """
    Assembled layer graph plus its compute backend.

    Parameters
    ----------
    backend : Optional[IComputeBackend]
        Backend used for every computation. Defaults to `NumpyBackend()`.
    name : str, optional
        Name of the top-level graph.
    """

    def __init__(
        self, backend: Optional[IComputeBackend] = None, *, name: str = "network"
    ) -> None:
        self.backend: IComputeBackend = backend if backend is not None else NumpyBackend()
        self.name = name
        self._state = GraphState.UNWIRED
        self._graph: Optional[Graph] = None

    @classmethod
    def from_config(
        cls,
        config: SequentialConfig,
        backend: Optional[IComputeBackend] = None,
        *,
        name: str = "network",
    ) -> "Network":
        """Create a network and assemble `config` into it."""
        network = cls(backend, name=name)
        network.assemble(config)
        return network

    @property
    def state(self) -> GraphState:
        return self._state

    @property
    def graph(self) -> Graph:
        if self._graph is None:
            raise GraphStateError("access the graph", self._state.value)
        return self._graph

    # ------------------------------------------------------------------
    # Dispatched methods
    # ------------------------------------------------------------------
    def assemble(self, config: SequentialConfig) -> None:
        """
        Wire, analyze and size `config`.

        Raises
        ------
        GraphConfigurationError
            On any invalid declaration. The network stays UNWIRED.
        GraphStateError
            If the network is already assembled.
        """

    def bind_inputs(self, inputs: InputArrays) -> None:
        """
        Copy arrays into the external input tensors.

        `inputs` is either a sequence in declaration order or a mapping from
        input name to array. A shape change re-runs the reshape and workspace
        passes.

        Raises
        ------
        ValueError
            If the inputs do not match the declared external inputs.
        """

    def forward(self, inputs: Optional[InputArrays] = None) -> float:
        """
        Run every layer in declaration order and return the weighted loss.

        `inputs` are bound first when given; a WIRED network requires them.
        """

    def backward(self) -> None:
        """
        Run the backward pass in reverse order.

        Only layers flagged `needs_backward` compute. Weight gradients are
        accumulated; clear them with `clear_weight_gradients`.
        """

    def forward_backward(self, inputs: Optional[InputArrays] = None) -> float:
        """`forward(inputs)` followed by `backward()`; returns the loss."""

    def forward_from_to(self, start: int, end: int) -> float:
        """
        Run layers `start` through `end` (inclusive) on the bound inputs.

        Returns the loss of the layers that ran.

        Raises
        ------
        IndexError
            If either index is outside the graph.
        ValueError
            If `start` comes after `end`.
        """

    def backward_from_to(self, start: int, end: int) -> None:
        """Run the backward pass from layer `start` down to layer `end`."""

    def reshape(self) -> None:
        """Re-run layer reshapes and workspace sizing for new input shapes."""

    def clear_weight_gradients(self) -> None:
        """Zero the gradient of every unique learnable weight."""

    def update_weights(self) -> None:
        """Apply `data -= gradient` to every unique learnable weight."""

    def learnable_weights(self) -> List[LearnableWeight]:
        """Unique learnable weights, nested graphs included."""

    def wiring_report(self) -> WiringReport:
        """Tensors, layers, weights and workspace of the assembled graph."""

    # ------------------------------------------------------------------
    # Tensor views
    # ------------------------------------------------------------------
    @property
    def input_pairs(self) -> List[TensorPair]:
        return list(self.graph.input_pairs)

    @property
    def output_pairs(self) -> List[TensorPair]:
        return list(self.graph.output_pairs)

    @property
    def input_data_tensors(self) -> List[SharedTensor]:
        return [p.data for p in self.input_pairs]

    @property
    def input_gradient_tensors(self) -> List[SharedTensor]:
        return [p.gradient for p in self.input_pairs]

    @property
    def output_data_tensors(self) -> List[SharedTensor]:
        return [p.data for p in self.output_pairs]

    @property
    def output_gradient_tensors(self) -> List[SharedTensor]:
        return [p.gradient for p in self.output_pairs]

    def _synchronize(self) -> None:
        self.backend.synchronize()
        self.graph.synchronize(self.backend.device)

    def __repr__(self) -> str:
        return f"Network(name={self.name!r}, state={self._state.value})"


def _refuse(network: Network, method: Callable[..., Any], state: GraphState) -> None:
    raise GraphStateError(method.__name__, state.value)


_ASSEMBLED = (GraphState.WIRED, GraphState.READY)


@network_control_path(Network, Network.assemble, GraphState.UNWIRED, on_missing=_refuse)
def _assemble(self: Network, config: SequentialConfig) -> None:
    logger.info("Assembling network %s", self.name)
    graph = Graph(config, self.backend, name=self.name)
    self._graph = graph
    self._state = GraphState.WIRED
    logger.info(
        "Network %s assembled: %d layers, %d learnable weights, workspace %d bytes",
        self.name,
        len(graph.layers),
        len(graph.learnable_weights()),
        graph.workspace.size,
    )


@network_control_path(Network, Network.bind_inputs, *_ASSEMBLED, on_missing=_refuse)
def _bind_inputs(self: Network, inputs: InputArrays) -> None:
    graph = self.graph
    if isinstance(inputs, Mapping):
        unknown = set(inputs) - set(graph.input_names)
        missing = [n for n in graph.input_names if n not in inputs]
        if unknown or missing:
            raise ValueError(
                f"Network {self.name}: inputs must be exactly {graph.input_names}; "
                f"missing {missing}, unknown {sorted(unknown)}"
            )
        arrays = [inputs[n] for n in graph.input_names]
    else:
        arrays = list(inputs)
        if len(arrays) != len(graph.input_pairs):
            raise ValueError(
                f"Network {self.name}: expected {len(graph.input_pairs)} inputs, "
                f"got {len(arrays)}"
            )

    reshaped = False
    for pair, array in zip(graph.input_pairs, arrays):
        array = np.asarray(array, dtype=pair.data.dtype)
        if tuple(array.shape) != tuple(pair.shape):
            pair.resize(array.shape)
            reshaped = True
        pair.data.write(array)

    if reshaped:
        logger.debug("Network %s: input shapes changed, reshaping", self.name)
        graph.reshape(self.backend)
    self._state = GraphState.READY


@network_control_path(Network, Network.forward, GraphState.WIRED, on_missing=_refuse)
def _forward_wired(self: Network, inputs: Optional[InputArrays] = None) -> float:
    if inputs is None:
        raise GraphStateError("forward without inputs", self._state.value)
    self.bind_inputs(inputs)
    return self.forward()


@network_control_path(Network, Network.forward, GraphState.READY)
def _forward_ready(self: Network, inputs: Optional[InputArrays] = None) -> float:
    if inputs is not None:
        self.bind_inputs(inputs)
    loss = self.graph.forward(self.backend)
    self._synchronize()
    return loss


@network_control_path(Network, Network.backward, GraphState.READY, on_missing=_refuse)
def _backward(self: Network) -> None:
    self.graph.backward(self.backend)
    self._synchronize()


@network_control_path(
    Network, Network.forward_from_to, GraphState.READY, on_missing=_refuse
)
def _forward_from_to(self: Network, start: int, end: int) -> float:
    loss = self.graph.forward_from_to(self.backend, start, end)
    self._synchronize()
    return loss


@network_control_path(
    Network, Network.backward_from_to, GraphState.READY, on_missing=_refuse
)
def _backward_from_to(self: Network, start: int, end: int) -> None:
    self.graph.backward_from_to(self.backend, start, end)
    self._synchronize()


@network_control_path(
    Network, Network.forward_backward, *_ASSEMBLED, on_missing=_refuse
)
def _forward_backward(self: Network, inputs: Optional[InputArrays] = None) -> float:
    loss = self.forward(inputs)
    self.backward()
    return loss


@network_control_path(Network, Network.reshape, *_ASSEMBLED, on_missing=_refuse)
def _reshape(self: Network) -> None:
    self.graph.reshape(self.backend)


@network_control_path(
    Network, Network.clear_weight_gradients, *_ASSEMBLED, on_missing=_refuse
)
def _clear_weight_gradients(self: Network) -> None:
    self.graph.clear_weight_gradients()


@network_control_path(Network, Network.update_weights, *_ASSEMBLED, on_missing=_refuse)
def _update_weights(self: Network) -> None:
    self.graph.update_weights(self.backend)
    self._synchronize()


@network_control_path(
    Network, Network.learnable_weights, *_ASSEMBLED, on_missing=_refuse
)
def _learnable_weights(self: Network) -> List[LearnableWeight]:
    return self.graph.learnable_weights()


@network_control_path(Network, Network.wiring_report, *_ASSEMBLED, on_missing=_refuse)
def _wiring_report(self: Network) -> WiringReport:
    return build_report(self.graph)
