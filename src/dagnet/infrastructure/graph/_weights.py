"""
Weight-sharing registry.

Each assembled graph owns one `WeightRegistry`. Layers declare their weights
through `declare` in wiring order:

- An anonymous (empty) or unseen name creates a new entry owned by the
  declaring layer and appends it to the learnable list.
- A known name binds the declaring layer's data and gradient tensors to the
  owner's storage. Shapes are checked per the declaring layer's share mode,
  and learning-rate / weight-decay multipliers are reconciled.

The learnable list contains each entry exactly once, however many layers
share it; it is what the optimizer iterates over.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ...domain._config import DimCheckMode, WeightConfig
from ...domain._errors import DimensionMismatchError, SharedWeightConflictError
from ..tensor._shared_tensor import SharedTensor

logger = logging.getLogger(__name__)


@dataclass
class WeightEntry:
    """
    One unique learnable weight.

    Attributes
    ----------
    name : str
        Display name: the sharing key, or `<layer>.<weight_id>` when anonymous.
    owner_layer : str
        Layer that allocated the storage.
    owner_index : int
        Declaration index of the owner.
    data, gradient : SharedTensor
        The owner's tensors; sharers view the same storage.
    share_mode : DimCheckMode
        Mode declared by the owner.
    lr_mult, decay_mult : Optional[float]
        Reconciled multipliers, None while unspecified by every sharer.
    sharing_layers : list[str]
        Layers other than the owner bound to this entry.
    """

    name: str
    owner_layer: str
    owner_index: int
    data: SharedTensor
    gradient: SharedTensor
    share_mode: DimCheckMode = DimCheckMode.STRICT
    lr_mult: Optional[float] = None
    decay_mult: Optional[float] = None
    sharing_layers: List[str] = field(default_factory=list)

    @property
    def effective_lr_mult(self) -> float:
        return 1.0 if self.lr_mult is None else self.lr_mult

    @property
    def effective_decay_mult(self) -> float:
        return 1.0 if self.decay_mult is None else self.decay_mult


@dataclass(frozen=True)
class LearnableWeight:
    """Optimizer-facing view of a `WeightEntry` (an `ILearnableWeight`)."""

    name: str
    data: SharedTensor
    gradient: SharedTensor
    lr_mult: float
    decay_mult: float


@dataclass(frozen=True)
class WeightHandle:
    """
    Result of one declaration.

    `is_owner` is False when the layer joined an existing share; its tensors
    then alias `entry.data` / `entry.gradient`.
    """

    entry: WeightEntry
    data: SharedTensor
    gradient: SharedTensor
    is_owner: bool


class WeightRegistry:
    """Name-keyed registry of the learnable weights of one graph."""

    def __init__(self) -> None:
        self._entries: List[WeightEntry] = []
        self._by_name: Dict[str, WeightEntry] = {}

    def declare(
        self,
        layer_id: int,
        weight_id: int,
        data: SharedTensor,
        gradient: SharedTensor,
        config: WeightConfig,
        layer_name: str,
    ) -> WeightHandle:
        """
        Register weight `weight_id` of layer `layer_name`.

        `data` and `gradient` must already have the shape the layer expects.

        Raises
        ------
        DimensionMismatchError
            If the layer joins a share whose shape (strict) or element count
            (permissive) differs from the owner's.
        SharedWeightConflictError
            If the layer and the share specify different multipliers.
        """
        name = config.name
        if not name or name not in self._by_name:
            entry = WeightEntry(
                name=name or f"{layer_name}.{weight_id}",
                owner_layer=layer_name,
                owner_index=layer_id,
                data=data,
                gradient=gradient,
                share_mode=config.share_mode,
                lr_mult=config.lr_mult,
                decay_mult=config.decay_mult,
            )
            self._entries.append(entry)
            if name:
                self._by_name[name] = entry
            logger.debug(
                "Layer %s owns weight %s %s", layer_name, entry.name, list(data.shape)
            )
            return WeightHandle(entry, data, gradient, True)

        entry = self._by_name[name]
        self._check_dimensions(entry, data, config.share_mode, layer_name)
        entry.lr_mult = self._reconcile(
            entry, layer_name, "lr_mult", entry.lr_mult, config.lr_mult
        )
        entry.decay_mult = self._reconcile(
            entry, layer_name, "decay_mult", entry.decay_mult, config.decay_mult
        )

        data.share_storage_with(entry.data)
        gradient.share_storage_with(entry.gradient)
        entry.sharing_layers.append(layer_name)
        logger.info(
            "Sharing weight %s owned by layer %s with layer %s",
            name,
            entry.owner_layer,
            layer_name,
        )
        return WeightHandle(entry, data, gradient, False)

    @staticmethod
    def _check_dimensions(
        entry: WeightEntry, data: SharedTensor, mode: DimCheckMode, layer_name: str
    ) -> None:
        if mode is DimCheckMode.STRICT:
            if tuple(data.shape) != tuple(entry.data.shape):
                raise DimensionMismatchError(
                    entry.name,
                    entry.owner_layer,
                    layer_name,
                    entry.data.shape,
                    data.shape,
                    "shape",
                )
        elif data.size != entry.data.size:
            raise DimensionMismatchError(
                entry.name,
                entry.owner_layer,
                layer_name,
                entry.data.shape,
                data.shape,
                "count",
            )

    @staticmethod
    def _reconcile(
        entry: WeightEntry,
        layer_name: str,
        attribute: str,
        current: Optional[float],
        declared: Optional[float],
    ) -> Optional[float]:
        if declared is None:
            return current
        if current is None:
            return float(declared)
        if float(declared) != float(current):
            raise SharedWeightConflictError(
                entry.name, layer_name, attribute, current, declared
            )
        return current

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    @property
    def entries(self) -> List[WeightEntry]:
        return list(self._entries)

    def lookup(self, name: str) -> Optional[WeightEntry]:
        return self._by_name.get(name)

    def learnable_weights(self) -> List[LearnableWeight]:
        return [
            LearnableWeight(
                e.name, e.data, e.gradient, e.effective_lr_mult, e.effective_decay_mult
            )
            for e in self._entries
        ]

    def display_names(self) -> List[str]:
        return [e.name for e in self._entries]

    def weights_lr(self) -> List[float]:
        return [e.effective_lr_mult for e in self._entries]

    def weights_weight_decay(self) -> List[float]:
        return [e.effective_decay_mult for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)
