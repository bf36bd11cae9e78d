"""
Loss workers.

`NegativeLogLikelihood` takes `(log_probabilities, labels)` and produces a
single-element loss output:

    loss = -mean_n(input[n, label[n]])

It is meant to follow a `LogSoftmax` layer. The loss output is created
anonymously when the layer declares none.
"""

from __future__ import annotations

from typing import List

import numpy as np

from ...domain._backend import IComputeBackend
from ...domain._config import LayerType, NegativeLogLikelihoodConfig
from ...domain._errors import BackendError
from ...domain._tensor import ISharedTensor
from ._base import LayerWorker, register_layer


@register_layer(LayerType.NEGATIVE_LOG_LIKELIHOOD)
class NegativeLogLikelihood(LayerWorker):
    """
    Mean negative log-likelihood over the batch.

    Notes
    -----
    - The loss weight of output 0 is stored in that output's gradient
      buffer by the graph; the input gradient is scaled by it.
    - Labels are class indices and never receive a gradient, not even under
      forced backward.
    """

    kind_config: NegativeLogLikelihoodConfig

    def __init__(
        self, kind_config: NegativeLogLikelihoodConfig, *, name: str = ""
    ) -> None:
        if not isinstance(kind_config, NegativeLogLikelihoodConfig):
            raise TypeError(
                f"Layer '{name}': NegativeLogLikelihood requires a "
                "NegativeLogLikelihoodConfig"
            )
        super().__init__(kind_config, name=name)

    def allow_force_backward(self, input_id: int) -> bool:
        return input_id != 1

    def reshape(
        self,
        backend: IComputeBackend,
        input_data: List[ISharedTensor],
        input_gradient: List[ISharedTensor],
        weights_data: List[ISharedTensor],
        weights_gradient: List[ISharedTensor],
        output_data: List[ISharedTensor],
        output_gradient: List[ISharedTensor],
    ) -> None:
        for tensor in (*output_data, *output_gradient):
            tensor.resize((1,))

    def _labels(self, probabilities: np.ndarray, labels: np.ndarray) -> np.ndarray:
        batch = probabilities.shape[0]
        idx = labels.reshape(-1).astype(np.int64)
        if idx.size != batch:
            raise BackendError(
                "negative_log_likelihood",
                f"expected {batch} labels, got {idx.size}",
            )
        if np.any(idx < 0) or np.any(idx >= self.kind_config.num_classes):
            raise BackendError(
                "negative_log_likelihood",
                f"labels must lie in [0, {self.kind_config.num_classes})",
            )
        return idx

    def compute_output(self, backend, weights_data, input_data, output_data):
        probabilities = input_data[0].data
        rows = probabilities.reshape(probabilities.shape[0], -1)
        idx = self._labels(rows, input_data[1].data)
        picked = rows[np.arange(rows.shape[0]), idx]
        output_data[0].data[...] = -float(np.mean(picked))
        return None

    def compute_input_gradient(
        self,
        backend,
        weights_data,
        output_data,
        output_gradients,
        input_data,
        input_gradients,
    ):
        probabilities = input_data[0].data
        rows = probabilities.reshape(probabilities.shape[0], -1)
        idx = self._labels(rows, input_data[1].data)
        scale = float(output_gradients[0].data.reshape(-1)[0])

        grad = np.zeros_like(rows)
        grad[np.arange(rows.shape[0]), idx] = -scale / rows.shape[0]
        input_gradients[0].write(grad)
        if len(input_gradients) > 1:
            input_gradients[1].fill(0.0)
