"""
Sequential container layer.

A `Sequential` layer wraps a nested `Graph` built from its `SequentialConfig`.
At the boundary:

- Inputs: the nested graph reads the parent's data tensors directly and keeps
  gradient buffers of its own. After the nested backward pass those gradients
  are copied into whatever buffer the parent hands to the container.
- Outputs: the nested graph's output pairs are registered in the parent
  under the container's declared output names (or stay anonymous), so parent
  layers downstream read and write them without a copy.

The nested graph has its own tensor and weight scopes. Its workspace request
is reported to the parent and it computes in the parent's workspace.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType, SequentialConfig
from ...domain._errors import ArityMismatchError
from ...domain._tensor import ISharedTensor
from ..layers._base import LayerWorker, register_layer
from ..tensor._registry import TensorPair
from ..tensor._shared_tensor import SharedTensor
from ._graph import Graph


@register_layer(LayerType.SEQUENTIAL)
class Sequential(LayerWorker):
    """
    Container worker running a nested graph.

    Parameters
    ----------
    kind_config : SequentialConfig
        Declaration of the nested layers. When it names no inputs, the nested
        graph sees the parent's tensors under `<layer>.<parent name>`.
    name : str
        Layer name.

    Raises
    ------
    TypeError
        If `kind_config` is not a `SequentialConfig`.
    """

    def __init__(self, kind_config: Any = None, *, name: str = "") -> None:
        if not isinstance(kind_config, SequentialConfig):
            raise TypeError(
                f"Layer '{name}': Sequential requires a SequentialConfig, "
                f"got {type(kind_config).__name__}"
            )
        super().__init__(kind_config, name=name)
        self.inner_graph: Optional[Graph] = None
        self._inner_inputs: List[TensorPair] = []
        self._propagate_down: List[bool] = []

    def build(
        self, backend: IComputeBackend, inputs: Sequence[Tuple[str, TensorPair]]
    ) -> List[TensorPair]:
        """
        Assemble the nested graph on top of the parent's input tensors.

        Returns
        -------
        list[TensorPair]
            The nested graph's outputs, to be registered in the parent.

        Raises
        ------
        ArityMismatchError
            If the config names a different number of inputs than the
            container receives.
        """
        declared = self.kind_config.input_names()
        if declared and len(declared) != len(inputs):
            raise ArityMismatchError(
                self.name, "input", f"exactly {len(declared)}", len(inputs)
            )
        names = declared or [f"{self.name}.{key}" for key, _ in inputs]

        external = []
        for inner_name, (_, pair) in zip(names, inputs):
            inner_pair = TensorPair(inner_name, pair.data, SharedTensor(pair.shape))
            self._inner_inputs.append(inner_pair)
            external.append((inner_name, inner_pair))
        self._propagate_down = [True] * len(external)

        self.inner_graph = Graph(
            self.kind_config,
            backend,
            name=self.name,
            external_inputs=external,
            allocate_workspace=False,
        )
        return list(self.inner_graph.output_pairs)

    def num_weights(self) -> int:
        return 0

    def has_learnable_weights(self) -> bool:
        return self.inner_graph is not None and self.inner_graph.has_learnable_weights()

    def is_loss(self) -> bool:
        return self.inner_graph is not None and self.inner_graph.is_loss()

    def loss_weight(self, output_id: int) -> Optional[float]:
        # Nested losses are weighted inside the nested graph.
        return None

    def plan_backprop(
        self, needs_backward: bool, propagate_down: Sequence[bool], force: bool
    ) -> None:
        """Re-run the nested analysis once the parent has decided its flags."""
        self._propagate_down = list(propagate_down)
        outputs: List[str] = []
        if needs_backward and self.inner_graph.layers:
            outputs = list(self.inner_graph.layers[-1].output_keys)
        self.inner_graph.analyze_backprop(
            force=force or self.kind_config.force_backward, under_loss=outputs
        )

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------
    def workspace_size(
        self, backend: IComputeBackend, input_shapes: Sequence[Sequence[int]]
    ) -> int:
        return self.inner_graph.workspace_requirement(backend)

    def set_workspace(self, workspace: Any) -> None:
        super().set_workspace(workspace)
        self.inner_graph.set_workspace(workspace)

    # ------------------------------------------------------------------
    # Compute
    # ------------------------------------------------------------------
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
        for pair, data in zip(self._inner_inputs, input_data):
            pair.gradient.resize(data.shape)
        self.inner_graph.reshape(backend, size_workspace=False)

    def compute_output(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        input_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
    ) -> float:
        return self.inner_graph.forward(backend)

    def compute_input_gradient(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
        output_gradients: List[ISharedTensor],
        input_data: List[ISharedTensor],
        input_gradients: List[ISharedTensor],
    ) -> None:
        for pair in self._inner_inputs:
            pair.gradient.fill(0.0)
        self.inner_graph.backward(backend)
        for input_id, (pair, target) in enumerate(
            zip(self._inner_inputs, input_gradients)
        ):
            if self._propagate_down[input_id]:
                target.write(pair.gradient.data)
