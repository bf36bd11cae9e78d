"""
Domain-level optimizer contracts for dagnet.

This module defines the two sides of the boundary between an assembled
network and the optimizer that trains it:

- `ILearnableWeight`: what the network exposes for every unique learnable
  weight (data, gradient and the per-weight multipliers).
- `IOptimizer`: what a training loop expects from an optimizer.

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy or
  infrastructure implementations.
- The network computes gradients; the optimizer turns them into update values
  written back into the gradient buffers; the network then applies them via
  `update_weights()`.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable

from ._tensor import ISharedTensor


@runtime_checkable
class ILearnableWeight(Protocol):
    """
    Read-only view of one unique learnable weight.
    """

    @property
    def name(self) -> str: ...

    @property
    def data(self) -> ISharedTensor: ...

    @property
    def gradient(self) -> ISharedTensor: ...

    @property
    def lr_mult(self) -> float: ...

    @property
    def decay_mult(self) -> float: ...


@runtime_checkable
class IOptimizer(Protocol):
    """
    Optimizer interface contract.

    Required methods
    ----------------
    - `step()` converts the current gradients into update values and applies
      them to the network's learnable weights.
    - `zero_grad()` clears the gradients of the managed weights.
    """

    def step(self) -> None:
        """
        Apply one optimization step.
        """
        ...

    def zero_grad(self) -> None:
        """
        Clear gradients for all managed weights.
        """
        ...

    @property
    def params(self) -> Iterable[ILearnableWeight]:
        """
        Return the learnable weights managed by this optimizer.
        """
        ...
