"""
Declarative graph configuration.

This module defines the plain-data description of a layer graph:

- `LayerType`: the closed catalog of layer kinds. Each kind carries a
  `LayerCapabilities` record (arity constraints, in-place support, container
  status, ...) that the assembly pass resolves once per layer.
- `LayerConfig`: one layer declaration (name, kind, input/output tensor names,
  weight declarations, per-input propagate-down flags, loss weights).
- Kind-specific parameter records (`LinearConfig`, `ConvolutionConfig`, ...).
- `WeightConfig` and `DimCheckMode`: how a learnable weight is named, shared
  and scaled by the optimizer.
- `SequentialConfig`: an ordered list of layers plus the named external inputs
  of the graph and the `force_backward` switch.

Nothing here allocates tensors or depends on a compute backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class LayerCapabilities:
    """
    Static capability record of a layer kind.

    Attributes
    ----------
    exact_num_inputs, exact_num_outputs : Optional[int]
        Exact tensor counts the kind requires, or None when unconstrained.
    min_num_inputs, min_num_outputs : int
        Minimum tensor counts.
    auto_outputs : bool
        Whether missing outputs are created anonymously up to the minimum.
    in_place : bool
        Whether the kind may write its output into its input's storage.
    container : bool
        Whether the kind wraps a nested graph of layers.
    learnable : bool
        Whether the kind owns learnable weights.
    loss : bool
        Whether the kind computes a loss (default loss weight 1.0 on output 0).
    """

    exact_num_inputs: Optional[int] = None
    exact_num_outputs: Optional[int] = None
    min_num_inputs: int = 0
    min_num_outputs: int = 0
    auto_outputs: bool = False
    in_place: bool = False
    container: bool = False
    learnable: bool = False
    loss: bool = False

    def required_outputs(self) -> int:
        """Number of outputs that auto-creating kinds fill up to."""
        if self.exact_num_outputs is not None:
            return max(self.exact_num_outputs, self.min_num_outputs)
        return self.min_num_outputs


_ONE_TO_ONE = dict(exact_num_inputs=1, exact_num_outputs=1)


class LayerType(Enum):
    """
    Closed catalog of layer kinds understood by the graph engine.
    """

    LINEAR = "Linear"
    CONVOLUTION = "Convolution"
    POOLING = "Pooling"
    RELU = "ReLU"
    SIGMOID = "Sigmoid"
    TANH = "TanH"
    SOFTMAX = "Softmax"
    LOG_SOFTMAX = "LogSoftmax"
    NEGATIVE_LOG_LIKELIHOOD = "NegativeLogLikelihood"
    RESHAPE = "Reshape"
    FLATTEN = "Flatten"
    SEQUENTIAL = "Sequential"

    @property
    def capabilities(self) -> LayerCapabilities:
        return _CAPABILITIES[self]

    def supports_in_place(self) -> bool:
        return self.capabilities.in_place

    def is_container(self) -> bool:
        return self.capabilities.container


_CAPABILITIES: Dict[LayerType, LayerCapabilities] = {
    LayerType.LINEAR: LayerCapabilities(**_ONE_TO_ONE, learnable=True),
    LayerType.CONVOLUTION: LayerCapabilities(**_ONE_TO_ONE, learnable=True),
    LayerType.POOLING: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.RELU: LayerCapabilities(**_ONE_TO_ONE, in_place=True),
    LayerType.SIGMOID: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.TANH: LayerCapabilities(**_ONE_TO_ONE, in_place=True),
    LayerType.SOFTMAX: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.LOG_SOFTMAX: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.NEGATIVE_LOG_LIKELIHOOD: LayerCapabilities(
        exact_num_inputs=2, exact_num_outputs=1, auto_outputs=True, loss=True
    ),
    LayerType.RESHAPE: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.FLATTEN: LayerCapabilities(**_ONE_TO_ONE),
    LayerType.SEQUENTIAL: LayerCapabilities(container=True),
}


class DimCheckMode(Enum):
    """
    How strictly two layers sharing a weight must agree on its dimensions.

    STRICT requires identical shapes, PERMISSIVE only equal element counts.
    """

    STRICT = "strict"
    PERMISSIVE = "permissive"


@dataclass
class WeightConfig:
    """
    Training configuration of one learnable weight of a layer.

    Attributes
    ----------
    name : str
        Sharing key. Layers declaring the same non-empty name share storage.
        Empty means anonymous and never shared.
    share_mode : DimCheckMode
        Dimension check applied when this layer joins an existing share.
    lr_mult, decay_mult : Optional[float]
        Multipliers on the global learning rate / weight decay. None means
        "unspecified" and resolves to 1.0 unless a sharer specifies one.
    filler : Optional[str]
        Name of a registered weight initializer overriding the layer default.
    filler_value : float
        Value used by the "constant" filler.
    """

    name: str = ""
    share_mode: DimCheckMode = DimCheckMode.STRICT
    lr_mult: Optional[float] = None
    decay_mult: Optional[float] = None
    filler: Optional[str] = None
    filler_value: float = 0.0

    def effective_lr_mult(self) -> float:
        return 1.0 if self.lr_mult is None else float(self.lr_mult)

    def effective_decay_mult(self) -> float:
        return 1.0 if self.decay_mult is None else float(self.decay_mult)


def _positive(name: str, value: int) -> int:
    if int(value) <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


def _as_dims(value: Union[int, Sequence[int]]) -> Tuple[int, ...]:
    if isinstance(value, int):
        return (value,)
    return tuple(int(v) for v in value)


@dataclass
class LinearConfig:
    """Parameters of a fully-connected layer."""

    layer_type: ClassVar[LayerType] = LayerType.LINEAR

    output_size: int
    bias: bool = False

    def __post_init__(self) -> None:
        self.output_size = _positive("output_size", self.output_size)


@dataclass
class ConvolutionConfig:
    """
    Parameters of a 2D convolution over NCHW inputs.

    `filter_shape`, `stride` and `padding` take one value applied to both
    spatial dimensions.
    """

    layer_type: ClassVar[LayerType] = LayerType.CONVOLUTION

    num_output: int
    filter_shape: Union[int, Sequence[int]] = 3
    stride: Union[int, Sequence[int]] = 1
    padding: Union[int, Sequence[int]] = 0
    bias: bool = False

    def __post_init__(self) -> None:
        self.num_output = _positive("num_output", self.num_output)
        self.filter_shape = _as_dims(self.filter_shape)
        self.stride = _as_dims(self.stride)
        self.padding = _as_dims(self.padding)
        for label, dims in (
            ("filter_shape", self.filter_shape),
            ("stride", self.stride),
        ):
            if len(dims) != 1 or dims[0] <= 0:
                raise ValueError(f"{label} must be one positive value, got {dims}")
        if len(self.padding) != 1 or self.padding[0] < 0:
            raise ValueError(
                f"padding must be one non-negative value, got {self.padding}"
            )


class PoolingMode(Enum):
    MAX = "max"
    AVERAGE = "average"


@dataclass
class PoolingConfig:
    """Parameters of a 2D pooling layer over NCHW inputs."""

    layer_type: ClassVar[LayerType] = LayerType.POOLING

    mode: PoolingMode = PoolingMode.MAX
    filter_shape: Union[int, Sequence[int]] = 2
    stride: Union[int, Sequence[int]] = 2
    padding: Union[int, Sequence[int]] = 0

    def __post_init__(self) -> None:
        self.filter_shape = _as_dims(self.filter_shape)
        self.stride = _as_dims(self.stride)
        self.padding = _as_dims(self.padding)
        if len(self.filter_shape) != 1 or self.filter_shape[0] <= 0:
            raise ValueError("filter_shape must be one positive value")
        if len(self.stride) != 1 or self.stride[0] <= 0:
            raise ValueError("stride must be one positive value")
        if len(self.padding) != 1 or self.padding[0] < 0:
            raise ValueError("padding must be one non-negative value")


@dataclass
class ReshapeConfig:
    """Target shape of a reshape layer (batch dimension included)."""

    layer_type: ClassVar[LayerType] = LayerType.RESHAPE

    shape: Sequence[int]

    def __post_init__(self) -> None:
        self.shape = tuple(_positive("shape", d) for d in self.shape)


@dataclass
class NegativeLogLikelihoodConfig:
    """Parameters of the negative log-likelihood loss."""

    layer_type: ClassVar[LayerType] = LayerType.NEGATIVE_LOG_LIKELIHOOD

    num_classes: int

    def __post_init__(self) -> None:
        self.num_classes = _positive("num_classes", self.num_classes)


KindConfig = Union[
    LinearConfig,
    ConvolutionConfig,
    PoolingConfig,
    ReshapeConfig,
    NegativeLogLikelihoodConfig,
    "SequentialConfig",
]


@dataclass
class LayerConfig:
    """
    Declaration of one layer.

    Parameters
    ----------
    name : str
        Layer name, used in logs, diagnostics and error messages.
    kind : Union[LayerType, KindConfig]
        Either a bare `LayerType` for parameterless kinds, or a kind-specific
        config object that carries its `LayerType`.
    inputs, outputs : list[str]
        Tensor names consumed/produced. May be left empty inside a
        `SequentialConfig`; the wiring resolver completes them.
    weights : list[WeightConfig]
        Per-weight configuration, indexed like the layer's weights.
    propagate_down : list[bool]
        Per-input flag; False means no gradient is wanted for that input.
        Missing entries default to True.
    loss_weights : list[float]
        Per-output loss weight overriding the kind's default.
    """

    name: str
    kind: Union[LayerType, Any]
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    weights: List[WeightConfig] = field(default_factory=list)
    propagate_down: List[bool] = field(default_factory=list)
    loss_weights: List[float] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, LayerType) and not isinstance(
            getattr(type(self.kind), "layer_type", None), LayerType
        ):
            raise TypeError(
                f"Layer '{self.name}': kind must be a LayerType or a kind "
                f"config, got {type(self.kind).__name__}"
            )
        self.inputs = list(self.inputs)
        self.outputs = list(self.outputs)
        self.weights = list(self.weights)
        self.propagate_down = [bool(p) for p in self.propagate_down]
        self.loss_weights = [float(w) for w in self.loss_weights]

    @property
    def layer_type(self) -> LayerType:
        if isinstance(self.kind, LayerType):
            return self.kind
        return type(self.kind).layer_type

    @property
    def kind_config(self) -> Optional[Any]:
        return None if isinstance(self.kind, LayerType) else self.kind

    def add_input(self, name: str) -> None:
        self.inputs.append(name)

    def add_output(self, name: str) -> None:
        self.outputs.append(name)

    def propagate_down_for(self, input_id: int) -> bool:
        if input_id < len(self.propagate_down):
            return self.propagate_down[input_id]
        return True

    def weight_config(self, weight_id: int) -> WeightConfig:
        if weight_id < len(self.weights):
            return self.weights[weight_id]
        return WeightConfig()

    def loss_weight_override(self, output_id: int) -> Optional[float]:
        if output_id < len(self.loss_weights):
            return self.loss_weights[output_id]
        return None

    def copy(self) -> "LayerConfig":
        """Return a copy whose name lists can be completed independently."""
        return LayerConfig(
            name=self.name,
            kind=self.kind,
            inputs=list(self.inputs),
            outputs=list(self.outputs),
            weights=list(self.weights),
            propagate_down=list(self.propagate_down),
            loss_weights=list(self.loss_weights),
        )


@dataclass
class SequentialConfig:
    """
    An ordered list of layers with named, shaped external inputs.

    Attributes
    ----------
    layers : list[LayerConfig]
        Layers in execution order.
    inputs : list[tuple[str, tuple[int, ...]]]
        External input tensor names and shapes.
    force_backward : bool
        Make every layer run backward even where no loss needs it.
    """

    layer_type: ClassVar[LayerType] = LayerType.SEQUENTIAL

    layers: List[LayerConfig] = field(default_factory=list)
    inputs: List[Tuple[str, Tuple[int, ...]]] = field(default_factory=list)
    force_backward: bool = False

    def __post_init__(self) -> None:
        self.layers = list(self.layers)
        self.inputs = [(str(n), tuple(int(d) for d in s)) for n, s in self.inputs]

    def add_layer(self, layer: LayerConfig) -> None:
        self.layers.append(layer)

    def add_input(self, name: str, shape: Sequence[int]) -> None:
        self.inputs.append((name, tuple(int(d) for d in shape)))

    def input_names(self) -> List[str]:
        return [name for name, _ in self.inputs]
