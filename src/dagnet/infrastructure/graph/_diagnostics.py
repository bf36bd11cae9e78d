"""
Wiring report for an assembled graph.

`build_report` walks a graph after assembly and records, per tensor, who
produces, rewrites and reads it; per layer, its resolved names and backward
flags; per weight, its owner and sharers. Nested graphs are reported as
children so `WiringReport.to_text` prints the whole tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ._graph import Graph


@dataclass
class TensorRecord:
    name: str
    shape: Tuple[int, ...]
    producer: Optional[str]
    in_place_writers: List[str]
    consumers: List[str]
    under_loss: bool
    skip_backprop: bool


@dataclass
class LayerRecord:
    name: str
    kind: str
    inputs: List[str]
    outputs: List[str]
    needs_backward: bool
    propagate_down: List[bool]


@dataclass
class WeightRecord:
    name: str
    owner: str
    sharing_layers: List[str]
    shape: Tuple[int, ...]
    lr_mult: float
    decay_mult: float


@dataclass
class WiringReport:
    """Snapshot of how a graph was wired, analyzed and sized."""

    name: str
    tensors: List[TensorRecord]
    layers: List[LayerRecord]
    weights: List[WeightRecord]
    workspace_bytes: int
    children: List["WiringReport"] = field(default_factory=list)

    def tensor(self, name: str) -> TensorRecord:
        for rec in self.tensors:
            if rec.name == name:
                return rec
        raise KeyError(name)

    def layer(self, name: str) -> LayerRecord:
        for rec in self.layers:
            if rec.name == name:
                return rec
        raise KeyError(name)

    def shared_weights(self) -> List[WeightRecord]:
        return [rec for rec in self.weights if rec.sharing_layers]

    def to_text(self, indent: int = 0) -> str:
        pad = " " * indent
        sections: List[str] = [f"{pad}Graph {self.name}:"]

        def _fmt_section(title: str, rows: Sequence[str]) -> Optional[str]:
            if not rows:
                return None
            return "\n".join([f"{pad}{title}:"] + [f"{pad}  {row}" for row in rows])

        tensor_rows = []
        for rec in self.tensors:
            flags = []
            if rec.under_loss:
                flags.append("under_loss")
            if rec.skip_backprop:
                flags.append("skip_backprop")
            writers = ""
            if rec.in_place_writers:
                writers = f" (in place: {', '.join(rec.in_place_writers)})"
            tensor_rows.append(
                f"{rec.name:<24} {str(list(rec.shape)):<16} "
                f"{rec.producer or '<input>'}{writers} -> "
                f"{', '.join(rec.consumers) or '-'} {' '.join(flags)}".rstrip()
            )

        layer_rows = [
            f"{rec.name:<24} {rec.kind:<22} backward={rec.needs_backward} "
            f"propagate_down={rec.propagate_down}"
            for rec in self.layers
        ]

        weight_rows = [
            f"{rec.name:<24} {str(list(rec.shape)):<16} owner={rec.owner} "
            f"shared_with=[{', '.join(rec.sharing_layers)}] "
            f"lr_mult={rec.lr_mult:g} decay_mult={rec.decay_mult:g}"
            for rec in self.weights
        ]

        for title, rows in (
            ("Tensors", tensor_rows),
            ("Layers", layer_rows),
            ("Weights", weight_rows),
        ):
            block = _fmt_section(title, rows)
            if block:
                sections.append(block)

        sections.append(f"{pad}Workspace: {self.workspace_bytes} bytes")
        for child in self.children:
            sections.append(child.to_text(indent + 2))
        return "\n".join(sections)


def build_report(graph: Graph) -> WiringReport:
    """Collect a `WiringReport` for `graph` and its nested graphs."""
    plan = graph.plan
    under_loss = plan.under_loss if plan is not None else set()
    skipped = plan.skip_backprop if plan is not None else set()
    registry = graph.registry

    tensors = [
        TensorRecord(
            name=name,
            shape=tuple(registry.lookup(name).shape),
            producer=registry.producer_of(name),
            in_place_writers=registry.in_place_writers(name),
            consumers=registry.consumers_of(name),
            under_loss=name in under_loss,
            skip_backprop=name in skipped,
        )
        for name in registry.names()
    ]
    layers = [
        LayerRecord(
            name=layer.name,
            kind=layer.layer_type.value,
            inputs=list(layer.input_keys),
            outputs=list(layer.output_keys),
            needs_backward=layer.needs_backward,
            propagate_down=list(layer.propagate_down),
        )
        for layer in graph.layers
    ]
    weights = [
        WeightRecord(
            name=entry.name,
            owner=entry.owner_layer,
            sharing_layers=list(entry.sharing_layers),
            shape=tuple(entry.data.shape),
            lr_mult=entry.effective_lr_mult,
            decay_mult=entry.effective_decay_mult,
        )
        for entry in graph.weights.entries
    ]
    return WiringReport(
        name=graph.name,
        tensors=tensors,
        layers=layers,
        weights=weights,
        workspace_bytes=graph.workspace.size,
        children=[build_report(inner) for _, inner in graph.children()],
    )
