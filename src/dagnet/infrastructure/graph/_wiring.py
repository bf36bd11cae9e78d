"""
Sequential wiring resolution.

A `SequentialConfig` may leave layer input and output names out. The
resolver completes them on copies of the layer declarations, so the user's
config is never mutated:

- The first layer without declared inputs receives the graph's external
  inputs (at most as many as its kind accepts).
- A layer is linked to its predecessor's first output only when it declares
  fewer inputs than its kind needs. Explicitly wired layers keep exactly the
  inputs they name, so branches and fan-out are expressed by naming tensors.
- A layer that supports in-place computation reuses the first output of the
  nearest preceding layer that does not (and names one), or the first
  external input when there is none. Its input and output then carry the
  same name, so a chain of in-place layers shares one tensor.
- Every other missing link gets a synthesized `SEQUENTIAL_<i>` name.
- The last layer produces `SEQUENTIAL_OUTPUT_<i>` unless it names its own
  outputs. Kinds that auto-create outputs are left unnamed where nothing
  consumes them; their outputs become anonymous.

Only names are decided here. Registering tensors and checking that every
name resolves is the job of `Layer.connect`.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ...domain._config import LayerConfig

logger = logging.getLogger(__name__)

LINK_PREFIX = "SEQUENTIAL_"
OUTPUT_PREFIX = "SEQUENTIAL_OUTPUT_"


def find_in_place_output(
    layers: Sequence[LayerConfig], layer_id: int, input_names: Sequence[str]
) -> Optional[str]:
    """
    Name an in-place layer at `layer_id` should compute on.

    Walks back over the preceding layers and returns the first output of the
    nearest one that is not in-place and already names an output; falls back
    to the first external input.
    """
    for j in range(layer_id - 1, -1, -1):
        candidate = layers[j]
        if not candidate.layer_type.supports_in_place() and candidate.outputs:
            return candidate.outputs[0]
    return input_names[0] if input_names else None


def _link(consumer: LayerConfig, name: str) -> None:
    if name not in consumer.inputs:
        consumer.inputs.insert(0, name)


def _wants_link(consumer: LayerConfig) -> bool:
    """Whether `consumer` declares fewer inputs than its kind needs."""
    caps = consumer.layer_type.capabilities
    required = max(caps.exact_num_inputs or 0, caps.min_num_inputs)
    return not consumer.inputs or len(consumer.inputs) < required


def resolve_sequential(
    layers: Sequence[LayerConfig], input_names: Sequence[str]
) -> List[LayerConfig]:
    """
    Return copies of `layers` with every link name filled in.

    Parameters
    ----------
    layers : Sequence[LayerConfig]
        Layer declarations in execution order.
    input_names : Sequence[str]
        Names of the graph's external inputs.
    """
    resolved = [layer.copy() for layer in layers]
    if not resolved:
        return resolved

    first = resolved[0]
    if not first.inputs:
        limit = first.layer_type.capabilities.exact_num_inputs
        names = list(input_names) if limit is None else list(input_names)[:limit]
        first.inputs.extend(names)

    last_id = len(resolved) - 1
    for i, layer in enumerate(resolved[:-1]):
        following = resolved[i + 1]

        if layer.outputs and following.inputs and layer.outputs[0] == following.inputs[0]:
            continue
        link = _wants_link(following)

        if not layer.outputs and layer.layer_type.supports_in_place():
            candidate = find_in_place_output(resolved, i, input_names)
            if candidate is not None and (
                not layer.inputs or layer.inputs[0] == candidate
            ):
                if not layer.inputs:
                    layer.add_input(candidate)
                layer.add_output(candidate)
                if link:
                    _link(following, candidate)
                logger.debug("%s runs in place on %s", layer.name, candidate)
                continue

        if not layer.outputs:
            if not link and layer.layer_type.capabilities.auto_outputs:
                continue
            layer.add_output(f"{LINK_PREFIX}{i}")
        if link:
            _link(following, layer.outputs[0])

    last = resolved[last_id]
    if not last.outputs and not last.layer_type.capabilities.auto_outputs:
        last.add_output(f"{OUTPUT_PREFIX}{last_id}")

    return resolved
