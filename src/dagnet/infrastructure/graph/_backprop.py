"""
Backprop-necessity analysis.

After wiring, the graph decides which layers run backward at all and which
inputs receive a gradient. The analysis reads an immutable `BackpropState`
snapshot of the wired graph and writes a fresh `BackpropPlan`; the graph
applies the plan to its layers afterwards. Nothing is mutated while the
traversal is running.

Layers are visited in reverse declaration order so every consumer of a
tensor is seen before its producer:

1. A layer contributes to the loss if it computes a loss or any of its
   outputs is under loss.
2. A layer is skip-eligible if every one of its outputs is marked
   skip-backprop (no consumer wants a gradient for it).
3. A contributing, non-skip-eligible layer puts all its inputs under loss.
4. `needs_backward` is its initial value AND contributes AND NOT
   skip-eligible. When it is False every `propagate_down` flag of the layer
   is cleared. Inputs whose flag ends up False are marked skip-backprop.

A tensor is only skip-backprop when *all* of its consumers refuse it a
gradient; one consumer wanting it is enough to keep its producer alive.

The optional force pass sets every `needs_backward` and turns on every
`propagate_down` flag the layer kind permits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Set, Tuple


@dataclass(frozen=True)
class BackpropState:
    """
    Read-only snapshot of the wired graph, one entry per layer.

    Attributes
    ----------
    layer_names : tuple[str, ...]
    is_loss : tuple[bool, ...]
        Layer computes a loss (kind default or explicit loss weight).
    inputs, outputs : tuple[tuple[str, ...], ...]
        Registry keys of each layer's inputs and outputs.
    propagate_down : tuple[tuple[bool, ...], ...]
        Declared per-input flags.
    needs_backward : tuple[bool, ...]
        Initial per-layer flags.
    allow_force_backward : tuple[tuple[bool, ...], ...]
        Per-input permission for the force pass.
    """

    layer_names: Tuple[str, ...]
    is_loss: Tuple[bool, ...]
    inputs: Tuple[Tuple[str, ...], ...]
    outputs: Tuple[Tuple[str, ...], ...]
    propagate_down: Tuple[Tuple[bool, ...], ...]
    needs_backward: Tuple[bool, ...]
    allow_force_backward: Tuple[Tuple[bool, ...], ...]

    def __len__(self) -> int:
        return len(self.layer_names)


@dataclass
class BackpropPlan:
    """Result of the analysis, indexed like the snapshot."""

    needs_backward: List[bool]
    propagate_down: List[List[bool]]
    under_loss: Set[str] = field(default_factory=set)
    skip_backprop: Set[str] = field(default_factory=set)
    forced: bool = False


def analyze_backprop(
    state: BackpropState, under_loss: Iterable[str] = ()
) -> BackpropPlan:
    """
    Run the reverse pass over `state`.

    Parameters
    ----------
    state : BackpropState
        Snapshot of the wired graph.
    under_loss : Iterable[str]
        Keys already known to be under loss, e.g. the outputs of a nested
        graph whose container feeds a loss.

    Returns
    -------
    BackpropPlan
    """
    needs = list(state.needs_backward)
    propagate = [list(flags) for flags in state.propagate_down]
    marked_loss: Set[str] = set(under_loss)
    refused: Set[str] = set()
    wanted: Set[str] = set()

    for i in reversed(range(len(state))):
        outputs = state.outputs[i]
        contributes = state.is_loss[i] or any(o in marked_loss for o in outputs)
        skip_eligible = all(o in refused and o not in wanted for o in outputs)

        needs[i] = needs[i] and contributes and not skip_eligible
        if contributes and not skip_eligible:
            marked_loss.update(state.inputs[i])
        if not needs[i]:
            propagate[i] = [False] * len(propagate[i])

        for j, key in enumerate(state.inputs[i]):
            if propagate[i][j]:
                wanted.add(key)
            else:
                refused.add(key)

    return BackpropPlan(
        needs_backward=needs,
        propagate_down=propagate,
        under_loss=marked_loss,
        skip_backprop=refused - wanted,
    )


def force_backward(state: BackpropState, plan: BackpropPlan) -> BackpropPlan:
    """
    Return a copy of `plan` where every layer runs backward.

    Inputs whose kind refuses forced gradients keep their planned flag.
    """
    propagate = [
        [flag or allowed for flag, allowed in zip(flags, permits)]
        for flags, permits in zip(plan.propagate_down, state.allow_force_backward)
    ]
    skipped = {
        key
        for keys, flags in zip(state.inputs, propagate)
        for key, flag in zip(keys, flags)
        if not flag
    }
    wanted = {
        key
        for keys, flags in zip(state.inputs, propagate)
        for key, flag in zip(keys, flags)
        if flag
    }
    return BackpropPlan(
        needs_backward=[True] * len(state),
        propagate_down=propagate,
        under_loss=set(plan.under_loss),
        skip_backprop=skipped - wanted,
        forced=True,
    )


def plan_backprop(
    state: BackpropState,
    *,
    force: bool = False,
    under_loss: Sequence[str] = (),
) -> BackpropPlan:
    """Analysis followed by the force pass when `force` is set."""
    plan = analyze_backprop(state, under_loss)
    if force:
        plan = force_backward(state, plan)
    return plan
