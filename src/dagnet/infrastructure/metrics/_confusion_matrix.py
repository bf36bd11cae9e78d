"""
Classification bookkeeping over network outputs.

`ConfusionMatrix` collects (prediction, target) samples, optionally keeping
only the most recent `capacity` of them, and reports their `Accuracy`.
`get_predictions` turns a batch of per-class network outputs into class
indices by taking the largest value of each row.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Iterable, List, Optional

import numpy as np


@dataclass(frozen=True)
class Sample:
    prediction: int
    target: int

    @property
    def correct(self) -> bool:
        return self.prediction == self.target

    def __str__(self) -> str:
        return f"Prediction: {self.prediction}, Target: {self.target}"


@dataclass(frozen=True)
class Accuracy:
    """Correct predictions out of all collected samples."""

    num_samples: int
    num_correct: int

    @property
    def ratio(self) -> float:
        """Percentage of correct samples; 0.0 when nothing was collected."""
        if self.num_samples == 0:
            return 0.0
        return self.num_correct / self.num_samples * 100.0

    def __str__(self) -> str:
        return f"{self.num_correct}/{self.num_samples} = {self.ratio:.2f}%"


class ConfusionMatrix:
    """
    Prediction samples for a `num_classes` classifier.

    Parameters
    ----------
    num_classes : int
        Number of output values per sample in a network output.
    capacity : Optional[int], optional
        Maximum number of samples kept. When full, adding a sample drops
        the oldest one. ``None`` keeps every sample.

    Raises
    ------
    ValueError
        If `num_classes` or `capacity` is not positive.
    """

    def __init__(self, num_classes: int, capacity: Optional[int] = None) -> None:
        if num_classes <= 0:
            raise ValueError(f"num_classes must be > 0, got {num_classes}")
        self.num_classes = int(num_classes)
        self._samples: Deque[Sample] = deque()
        self.set_capacity(capacity)

    @property
    def capacity(self) -> Optional[int]:
        return self._samples.maxlen

    def set_capacity(self, capacity: Optional[int]) -> None:
        """Change the capacity, dropping the oldest samples that no longer fit."""
        if capacity is not None and capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        self._samples = deque(self._samples, maxlen=capacity)

    def add_sample(self, prediction: int, target: int) -> None:
        self._samples.append(Sample(int(prediction), int(target)))

    def add_samples(self, predictions: Iterable[int], targets: Iterable[int]) -> None:
        """Add pairs of `predictions` and `targets`; extra items of either are ignored."""
        for prediction, target in zip(predictions, targets):
            self.add_sample(prediction, target)

    def get_predictions(self, network_out: Any) -> List[int]:
        """
        Predicted class of every sample in `network_out`.

        Parameters
        ----------
        network_out : SharedTensor or array-like
            Network output whose values, read row-major, are split into rows
            of `num_classes` values.

        Raises
        ------
        ValueError
            If the number of values is not a multiple of `num_classes`.
        """
        values = getattr(network_out, "data", network_out)
        flat = np.asarray(values).reshape(-1)
        if flat.size % self.num_classes:
            raise ValueError(
                f"{flat.size} output values do not split into rows of "
                f"{self.num_classes} classes"
            )
        rows = flat.reshape(-1, self.num_classes)
        return [int(i) for i in np.argmax(rows, axis=1)]

    def samples(self) -> List[Sample]:
        return list(self._samples)

    def accuracy(self) -> Accuracy:
        correct = sum(1 for sample in self._samples if sample.correct)
        return Accuracy(num_samples=len(self._samples), num_correct=correct)

    def __len__(self) -> int:
        return len(self._samples)
