from ._graph import Graph
from ._container import Sequential
from ._diagnostics import WiringReport
from ._network import GraphState, Network
from ._weights import LearnableWeight, WeightRegistry

__all__ = [
    Graph.__name__,
    Sequential.__name__,
    WiringReport.__name__,
    GraphState.__name__,
    Network.__name__,
    LearnableWeight.__name__,
    WeightRegistry.__name__,
]
