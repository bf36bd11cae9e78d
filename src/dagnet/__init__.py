"""
dagnet: static layer-graph assembly and execution.

Typical use::

    from dagnet import LayerConfig, LayerType, LinearConfig, Network, SequentialConfig

    config = SequentialConfig(inputs=[("data", (1, 30, 30))])
    config.add_layer(LayerConfig("sig", LayerType.SIGMOID))
    config.add_layer(LayerConfig("fc", LinearConfig(output_size=10)))
    net = Network.from_config(config)
    loss = net.forward_backward([batch])
"""

from .domain import *
from .infrastructure.backend import NumpyBackend
from .infrastructure.graph import GraphState, Network, WiringReport
from .infrastructure.metrics import Accuracy, ConfusionMatrix
from .infrastructure.optimizers import SGD, LRPolicy
