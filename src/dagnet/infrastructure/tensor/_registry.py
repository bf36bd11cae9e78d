"""
Tensor registry: symbolic tensor names to (data, gradient) buffer pairs.

The registry is created by one graph-assembly call and handed by reference
through the wiring pass; it is never module-level state. It enforces the
single-producer rule: a name may be registered once, and afterwards only by a
layer continuing it in place.

Anonymous tensors (auto-created outputs nobody names) are tracked for
ownership but are never visible through `lookup`, `names` or
`available_tensors`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

from ...domain._errors import DuplicateProducerError, UnknownInputTensorError
from ._shared_tensor import SharedTensor

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TensorPair:
    """
    A named tensor: data and gradient buffers of identical shape.

    Attributes
    ----------
    name : str
        Symbolic name. Anonymous pairs carry a name for diagnostics only.
    data, gradient : SharedTensor
        The two views.
    anonymous : bool
        Whether the pair is internal to one layer.
    """

    name: str
    data: SharedTensor = field(default_factory=SharedTensor)
    gradient: SharedTensor = field(default_factory=SharedTensor)
    anonymous: bool = False

    @property
    def shape(self) -> tuple[int, ...]:
        return self.data.shape

    def resize(self, shape: Sequence[int]) -> None:
        self.data.resize(shape)
        self.gradient.resize(shape)

    def __repr__(self) -> str:
        return f"TensorPair(name={self.name!r}, shape={list(self.shape)})"


@dataclass
class _Record:
    pair: TensorPair
    producer: Optional[str]
    in_place_writers: List[str] = field(default_factory=list)
    consumers: List[str] = field(default_factory=list)


class TensorRegistry:
    """
    Insertion-ordered mapping of tensor names to `TensorPair`s.

    `producer` arguments are layer names (None for external inputs); they
    feed the wiring report and error messages.
    """

    def __init__(self) -> None:
        self._records: Dict[str, _Record] = {}
        self._anonymous: List[TensorPair] = []

    def register(
        self,
        name: str,
        shape: Sequence[int] = (),
        *,
        producer: Optional[str] = None,
        in_place: bool = False,
    ) -> TensorPair:
        """
        Register `name` and return its pair.

        Parameters
        ----------
        name : str
            Tensor name.
        shape : Sequence[int]
            Initial shape of a new pair. Ignored for in-place continuations.
        producer : Optional[str]
            Name of the producing layer.
        in_place : bool
            The producer writes `name` in place of its predecessor; the
            existing pair is returned.

        Raises
        ------
        DuplicateProducerError
            If `name` exists and `in_place` is False.
        UnknownInputTensorError
            If `in_place` is True but `name` was never produced.
        """
        record = self._records.get(name)
        if in_place:
            if record is None:
                raise UnknownInputTensorError(producer or "<graph>", name)
            record.in_place_writers.append(producer or "<graph>")
            logger.debug("%s computes '%s' in place", producer, name)
            return record.pair

        if record is not None:
            raise DuplicateProducerError(producer or "<graph>", name)

        pair = TensorPair(name, SharedTensor(shape), SharedTensor(shape))
        self._records[name] = _Record(pair, producer)
        logger.debug("registered tensor '%s' %s from %s", name, list(shape), producer)
        return pair

    def register_anonymous(
        self, shape: Sequence[int] = (), *, producer: Optional[str] = None
    ) -> TensorPair:
        """Create an internal pair that no other layer can reference."""
        label = f"<anonymous:{producer}:{len(self._anonymous)}>"
        pair = TensorPair(label, SharedTensor(shape), SharedTensor(shape), True)
        self._anonymous.append(pair)
        return pair

    def adopt(self, name: str, pair: TensorPair, producer: Optional[str]) -> None:
        """
        Register an existing pair under `name`.

        Used by container layers to publish the outputs of their nested
        graph under the container's declared output names.
        """
        if name in self._records:
            raise DuplicateProducerError(producer or "<graph>", name)
        self._records[name] = _Record(pair, producer)

    def lookup(self, name: str) -> Optional[TensorPair]:
        record = self._records.get(name)
        return None if record is None else record.pair

    def consume(self, name: str, consumer: str) -> TensorPair:
        """
        Resolve an input reference of `consumer`.

        Raises
        ------
        UnknownInputTensorError
            If `name` was never produced.
        """
        record = self._records.get(name)
        if record is None:
            raise UnknownInputTensorError(consumer, name)
        record.consumers.append(consumer)
        return record.pair

    def resize(self, pair: TensorPair, shape: Sequence[int]) -> None:
        pair.resize(shape)

    def names(self) -> List[str]:
        return list(self._records)

    def available_tensors(self) -> List[TensorPair]:
        """Named pairs in registration order."""
        return [record.pair for record in self._records.values()]

    def anonymous_tensors(self) -> List[TensorPair]:
        return list(self._anonymous)

    def producer_of(self, name: str) -> Optional[str]:
        return self._records[name].producer

    def in_place_writers(self, name: str) -> List[str]:
        return list(self._records[name].in_place_writers)

    def consumers_of(self, name: str) -> List[str]:
        return list(self._records[name].consumers)

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)
