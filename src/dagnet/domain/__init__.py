from ._config import (
    ConvolutionConfig,
    DimCheckMode,
    LayerCapabilities,
    LayerConfig,
    LayerType,
    LinearConfig,
    NegativeLogLikelihoodConfig,
    PoolingConfig,
    PoolingMode,
    ReshapeConfig,
    SequentialConfig,
    WeightConfig,
)
from ._errors import (
    ArityMismatchError,
    BackendError,
    DimensionMismatchError,
    DuplicateProducerError,
    GraphConfigurationError,
    GraphStateError,
    SharedWeightConflictError,
    UnknownInputTensorError,
)
