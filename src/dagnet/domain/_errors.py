"""
Graph assembly and execution errors for dagnet.

This module defines the exception taxonomy raised while assembling a layer
graph from its configuration and while executing it:

- Configuration errors (`GraphConfigurationError` and subclasses) are raised
  during assembly only. They carry enough context (layer name, tensor or
  weight name, expected vs. actual values) to fix the configuration.
- `BackendError` wraps failures reported by the compute backend. It is tagged
  with the layer and operation that failed and leaves the graph intact.
- `GraphStateError` signals misuse of the execution state machine, e.g.
  running a backward pass on a graph that was never assembled.
"""

from __future__ import annotations

from typing import Optional, Sequence


class GraphConfigurationError(ValueError):
    """
    Base class for errors detected while assembling a graph.

    Attributes
    ----------
    layer : Optional[str]
        Name of the layer whose declaration is invalid, if known.
    """

    def __init__(self, message: str, *, layer: Optional[str] = None) -> None:
        super().__init__(message)
        self.layer = layer


class UnknownInputTensorError(GraphConfigurationError):
    """
    Raised when a layer consumes a tensor name that no earlier layer (and no
    external input) produces.

    Attributes
    ----------
    tensor : str
        The unresolved tensor name.
    """

    def __init__(self, layer: str, tensor: str) -> None:
        super().__init__(
            f"Unknown input tensor '{tensor}' (layer '{layer}').", layer=layer
        )
        self.tensor = tensor


class DuplicateProducerError(GraphConfigurationError):
    """
    Raised when a tensor name is produced by more than one source without the
    second producer computing in place.

    Attributes
    ----------
    tensor : str
        The tensor name produced twice.
    """

    def __init__(self, layer: str, tensor: str) -> None:
        super().__init__(
            f"Output tensor '{tensor}' produced by multiple sources "
            f"(second producer: '{layer}').",
            layer=layer,
        )
        self.tensor = tensor


class ArityMismatchError(GraphConfigurationError):
    """
    Raised when a layer declares a number of inputs or outputs that its kind
    does not accept.

    Attributes
    ----------
    direction : str
        Either "input" or "output".
    expected : str
        Human-readable constraint, e.g. "exactly 1" or "at least 2".
    actual : int
        The declared count.
    """

    def __init__(
        self, layer: str, direction: str, expected: str, actual: int
    ) -> None:
        super().__init__(
            f"Layer '{layer}' expects {expected} {direction} tensor(s), "
            f"got {actual}.",
            layer=layer,
        )
        self.direction = direction
        self.expected = expected
        self.actual = actual


class DimensionMismatchError(GraphConfigurationError):
    """
    Raised when a shared weight does not fit the layer that wants to share it.

    Attributes
    ----------
    weight : str
        Name of the shared weight.
    owner : str
        Name of the layer that owns the weight.
    owner_shape : tuple[int, ...]
        Shape of the owner's weight.
    expected_shape : tuple[int, ...]
        Shape expected by the sharing layer.
    """

    def __init__(
        self,
        weight: str,
        owner: str,
        layer: str,
        owner_shape: Sequence[int],
        expected_shape: Sequence[int],
        mode: str,
    ) -> None:
        super().__init__(
            f"Cannot share weight '{weight}' owned by layer '{owner}' with layer "
            f"'{layer}'; {mode} mismatch. Owner layer weight shape is "
            f"{list(owner_shape)}; sharing layer expects weight shape "
            f"{list(expected_shape)}.",
            layer=layer,
        )
        self.weight = weight
        self.owner = owner
        self.owner_shape = tuple(owner_shape)
        self.expected_shape = tuple(expected_shape)


class SharedWeightConflictError(GraphConfigurationError):
    """
    Raised when layers sharing a weight declare different learning-rate or
    weight-decay multipliers for it.
    """

    def __init__(
        self, weight: str, layer: str, attribute: str, owner_value, value
    ) -> None:
        super().__init__(
            f"Shared weight '{weight}' has mismatched {attribute} "
            f"(owner: {owner_value}, layer '{layer}': {value}).",
            layer=layer,
        )
        self.weight = weight
        self.attribute = attribute


class BackendError(RuntimeError):
    """
    Raised when the compute backend fails to execute an operation.

    The backend raises it with `kind` and `message`; the graph re-raises it
    with `layer` and `operation` filled in so the failing step is identifiable.

    Attributes
    ----------
    kind : str
        Backend operation or layer kind that failed (e.g. "gemm").
    message : str
        Backend-provided description of the failure.
    layer : Optional[str]
        Layer whose computation failed, if known.
    operation : Optional[str]
        One of "compute_output", "compute_input_gradient",
        "compute_parameters_gradient", if known.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        layer: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> None:
        where = ""
        if layer is not None:
            where = f" in layer '{layer}'"
            if operation is not None:
                where += f" during {operation}"
        super().__init__(f"Backend failure ({kind}){where}: {message}")
        self.kind = kind
        self.message = message
        self.layer = layer
        self.operation = operation


class GraphStateError(RuntimeError):
    """
    Raised when a network method is called in a state that does not allow it.
    """

    def __init__(self, operation: str, state: object) -> None:
        super().__init__(f"Cannot {operation} while the network is {state}.")
        self.operation = operation
        self.state = state
