"""
Layer worker catalog.

Importing this package registers one worker per `LayerType` (the container
kind is registered by the graph package) via import side effects.
"""

from ._base import LayerWorker, create_worker, register_layer, registered_layer_types
from ._activations import LogSoftmax, ReLU, Sigmoid, Softmax, TanH
from ._convolution import Convolution
from ._linear import Linear
from ._losses import NegativeLogLikelihood
from ._pooling import Pooling
from ._utility import Flatten, Reshape

__all__ = [
    LayerWorker.__name__,
    create_worker.__name__,
    register_layer.__name__,
    registered_layer_types.__name__,
    Linear.__name__,
    Convolution.__name__,
    Pooling.__name__,
    ReLU.__name__,
    Sigmoid.__name__,
    TanH.__name__,
    Softmax.__name__,
    LogSoftmax.__name__,
    NegativeLogLikelihood.__name__,
    Reshape.__name__,
    Flatten.__name__,
]
