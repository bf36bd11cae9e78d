"""
Stochastic Gradient Descent (SGD) optimizer with momentum.

The optimizer never touches weight data directly. For every unique learnable
weight of a network it turns the accumulated gradient into an update value,
writes that value back into the gradient buffer, and lets the network apply
all updates with `update_weights()` (`data -= gradient`).

Update rule
-----------
For each weight ``w`` with gradient ``g``, history ``h`` and multipliers
``lr_mult`` / ``decay_mult``:

    ``v <- momentum * h + rate * lr_mult * (g + weight_decay * decay_mult * w)``
    ``h <- v``
    ``g <- v``

``rate`` is ``lr`` under the default ``LRPolicy.FIXED``; the ``STEP`` and ``EXP``
policies decay it with the optimizer's iteration count.

Weights shared by several layers appear once in the learnable list, so each
is updated exactly once per step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np

from ...domain._optimizers import ILearnableWeight
from ._lr_policy import LRPolicy, get_learning_rate

if TYPE_CHECKING:
    from ..graph._network import Network

logger = logging.getLogger(__name__)


@dataclass
class SGD:
    """
    SGD optimizer bound to one network.

    Parameters
    ----------
    network : Network
        Assembled network whose learnable weights are optimized.
    lr : float, optional
        Base learning rate. Must be positive. Defaults to 1e-2.
    momentum : float, optional
        Momentum coefficient in [0, 1). Defaults to 0.0.
    weight_decay : float, optional
        Classical (coupled) L2 coefficient. Must be non-negative.
        Defaults to 0.0.
    lr_policy : LRPolicy, optional
        Learning rate schedule. Defaults to ``LRPolicy.FIXED``.
    gamma : float, optional
        Decay factor of the ``STEP`` and ``EXP`` policies, in (0, 1].
    stepsize : int, optional
        Iterations per decay step of the ``STEP`` policy.
    """

    network: "Network"
    lr: float = 1e-2
    momentum: float = 0.0
    weight_decay: float = 0.0
    lr_policy: LRPolicy = LRPolicy.FIXED
    gamma: float = 1.0
    stepsize: int = 1

    def __init__(
        self,
        network: "Network",
        *,
        lr: float = 1e-2,
        momentum: float = 0.0,
        weight_decay: float = 0.0,
        lr_policy: LRPolicy = LRPolicy.FIXED,
        gamma: float = 1.0,
        stepsize: int = 1,
    ) -> None:
        """
        Construct an SGD optimizer.

        Raises
        ------
        ValueError
            If ``lr <= 0``, ``momentum`` is outside [0, 1),
            ``weight_decay < 0`` or the policy's ``gamma`` / ``stepsize``
            are out of range.
        """
        self.network = network
        self.lr = float(lr)
        self.momentum = float(momentum)
        self.weight_decay = float(weight_decay)
        self.lr_policy = LRPolicy(lr_policy)
        self.gamma = float(gamma)
        self.stepsize = int(stepsize)

        if self.lr <= 0.0:
            raise ValueError(f"lr must be > 0, got {self.lr}")
        if not 0.0 <= self.momentum < 1.0:
            raise ValueError(f"momentum must be in [0, 1), got {self.momentum}")
        if self.weight_decay < 0.0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")
        if self.lr_policy.requires_gamma() and not 0.0 < self.gamma <= 1.0:
            raise ValueError(f"gamma must be in (0, 1], got {self.gamma}")
        if self.lr_policy.requires_stepsize() and self.stepsize <= 0:
            raise ValueError(f"stepsize must be > 0, got {self.stepsize}")

        self._history: Dict[int, np.ndarray] = {}
        self.iteration = 0

    @property
    def params(self) -> List[ILearnableWeight]:
        return self.network.learnable_weights()

    def learning_rate(self) -> float:
        """Rate the next `step` applies."""
        return get_learning_rate(
            self.lr_policy,
            self.lr,
            self.iteration,
            gamma=self.gamma,
            stepsize=self.stepsize,
        )

    def zero_grad(self) -> None:
        """Clear the gradients of every managed weight."""
        self.network.clear_weight_gradients()

    def compute_update_value(self) -> None:
        """Overwrite each weight's gradient with its update value."""
        rate = self.learning_rate()
        for weight in self.params:
            data = weight.data.data
            grad = weight.gradient.data

            if self.weight_decay != 0.0 and weight.decay_mult != 0.0:
                grad += (self.weight_decay * weight.decay_mult) * data
            grad *= rate * weight.lr_mult

            if self.momentum != 0.0:
                history = self._history_for(weight)
                history *= self.momentum
                history += grad
                grad[...] = history

    def _history_for(self, weight: ILearnableWeight) -> np.ndarray:
        key = id(weight.gradient)
        history: Optional[np.ndarray] = self._history.get(key)
        if history is None or history.shape != weight.gradient.shape:
            history = np.zeros(weight.gradient.shape, dtype=weight.gradient.dtype)
            self._history[key] = history
        return history

    def step(self) -> None:
        """Compute update values and apply them to the network's weights."""
        self.compute_update_value()
        self.network.update_weights()
        self.iteration += 1

    def train_step(self, inputs: Any) -> float:
        """
        One iteration: clear gradients, forward, backward, update.

        Returns
        -------
        float
            Loss of the forward pass.
        """
        self.zero_grad()
        loss = self.network.forward_backward(inputs)
        self.step()
        logger.debug("Iteration %d, loss = %g", self.iteration, loss)
        return loss
