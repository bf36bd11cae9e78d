"""
Layer worker base class and kind registry.

Every entry of the `LayerType` catalog is implemented by one worker class
registered with `@register_layer(LayerType.X)`. The graph resolves a layer's
worker once, at assembly time, through `create_worker`; afterwards all calls
go straight to the worker instance.

Workers only see tensors and a compute backend. Names, wiring and backprop
scheduling belong to the graph's `Layer` wrapper.
"""

from __future__ import annotations

from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

from ...domain._backend import IComputeBackend
from ...domain._config import LayerCapabilities, LayerConfig, LayerType, WeightConfig
from ...domain._layer import ILayerWorker
from ...domain._tensor import ISharedTensor
from ..utils.weight_initializer import WeightInitializer

W = TypeVar("W", bound=Type["LayerWorker"])

_WORKER_REGISTRY: Dict[LayerType, Type["LayerWorker"]] = {}


def register_layer(layer_type: LayerType) -> Callable[[W], W]:
    """
    Decorator registering a worker class for `layer_type`.

    Raises
    ------
    ValueError
        If a worker is already registered for `layer_type`.
    """

    def deco(cls: W) -> W:
        if layer_type in _WORKER_REGISTRY:
            raise ValueError(f"Layer kind already registered: {layer_type.value}")
        cls.layer_type = layer_type
        _WORKER_REGISTRY[layer_type] = cls
        return cls

    return deco


def registered_layer_types() -> Tuple[LayerType, ...]:
    return tuple(_WORKER_REGISTRY)


def create_worker(config: LayerConfig) -> "LayerWorker":
    """
    Instantiate the worker of `config`'s kind.

    Raises
    ------
    ValueError
        If no worker is registered for the kind.
    """
    try:
        cls = _WORKER_REGISTRY[config.layer_type]
    except KeyError as e:
        raise ValueError(
            f"Layer '{config.name}': no worker registered for kind "
            f"'{config.layer_type.value}'"
        ) from e
    return cls(config.kind_config, name=config.name)


class LayerWorker(ILayerWorker):
    """
    Base worker: parameterless, no workspace, not a loss.

    Subclasses override `reshape`, `compute_output` and
    `compute_input_gradient`; weight-bearing kinds also override
    `num_weights`, `default_filler` and `compute_parameters_gradient`.

    Parameters
    ----------
    kind_config : Any
        The kind-specific config dataclass, or None for parameterless kinds.
    name : str
        Layer name, used in messages.
    """

    layer_type: ClassVar[LayerType]

    def __init__(self, kind_config: Any = None, *, name: str = "") -> None:
        self.kind_config = kind_config
        self.name = name
        self._workspace: Any = None

    @property
    def capabilities(self) -> LayerCapabilities:
        return self.layer_type.capabilities

    def num_weights(self) -> int:
        return 0

    def is_loss(self) -> bool:
        return self.capabilities.loss

    def loss_weight(self, output_id: int) -> Optional[float]:
        if self.is_loss() and output_id == 0:
            return 1.0
        return None

    def allow_force_backward(self, input_id: int) -> bool:
        return True

    # ------------------------------------------------------------------
    # Weights
    # ------------------------------------------------------------------
    def default_filler(self, weight_id: int) -> str:
        return "constant"

    def fill_weights(
        self, weights_data: List[ISharedTensor], configs: Sequence[WeightConfig]
    ) -> None:
        for weight_id, tensor in enumerate(weights_data):
            config = configs[weight_id] if weight_id < len(configs) else WeightConfig()
            init = WeightInitializer(config.filler or self.default_filler(weight_id))
            if init.takes_value:
                init(tensor, value=config.filler_value)
            else:
                init(tensor)

    # ------------------------------------------------------------------
    # Workspace
    # ------------------------------------------------------------------
    def workspace_size(
        self, backend: IComputeBackend, input_shapes: Sequence[Sequence[int]]
    ) -> int:
        return 0

    def set_workspace(self, workspace: Any) -> None:
        self._workspace = workspace

    @property
    def workspace(self) -> Any:
        return self._workspace

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
        raise NotImplementedError

    def compute_output(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        input_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
    ) -> Optional[float]:
        raise NotImplementedError

    def compute_input_gradient(
        self,
        backend: IComputeBackend,
        weights_data: List[ISharedTensor],
        output_data: List[ISharedTensor],
        output_gradients: List[ISharedTensor],
        input_data: List[ISharedTensor],
        input_gradients: List[ISharedTensor],
    ) -> None:
        raise NotImplementedError

    def compute_parameters_gradient(
        self,
        backend: IComputeBackend,
        output_data: List[ISharedTensor],
        output_gradients: List[ISharedTensor],
        input_data: List[ISharedTensor],
        weights_gradients: List[ISharedTensor],
    ) -> None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def resize_like(targets: Sequence[ISharedTensor], shape: Sequence[int]) -> None:
    for tensor in targets:
        tensor.resize(shape)
