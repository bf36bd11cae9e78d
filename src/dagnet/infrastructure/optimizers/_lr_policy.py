"""
Learning rate schedules.

Each policy maps an iteration count to a learning rate derived from a base
rate:

- ``FIXED``: ``base_lr``
- ``STEP``:  ``base_lr * gamma ** floor(iteration / stepsize)``
- ``EXP``:   ``base_lr * gamma ** iteration``
"""

from __future__ import annotations

from enum import Enum


class LRPolicy(Enum):
    FIXED = "fixed"
    STEP = "step"
    EXP = "exp"

    def requires_gamma(self) -> bool:
        return self is not LRPolicy.FIXED

    def requires_stepsize(self) -> bool:
        return self is LRPolicy.STEP


def get_learning_rate(
    policy: LRPolicy,
    base_lr: float,
    iteration: int,
    *,
    gamma: float = 1.0,
    stepsize: int = 1,
) -> float:
    """
    Learning rate of `policy` at `iteration`.

    Parameters
    ----------
    policy : LRPolicy
        Schedule to evaluate.
    base_lr : float
        Rate at iteration 0.
    iteration : int
        Non-negative iteration count.
    gamma : float, optional
        Decay factor for ``STEP`` and ``EXP``.
    stepsize : int, optional
        Iterations per decay step for ``STEP``. Must be positive.

    Raises
    ------
    ValueError
        If `iteration` is negative or `stepsize` is not positive.
    """
    if iteration < 0:
        raise ValueError(f"iteration must be >= 0, got {iteration}")
    if policy is LRPolicy.FIXED:
        return base_lr
    if policy is LRPolicy.STEP:
        if stepsize <= 0:
            raise ValueError(f"stepsize must be > 0, got {stepsize}")
        return base_lr * gamma ** (iteration // stepsize)
    return base_lr * gamma**iteration
