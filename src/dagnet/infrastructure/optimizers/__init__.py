from ._lr_policy import LRPolicy, get_learning_rate
from ._sgd import SGD

__all__ = [SGD.__name__, LRPolicy.__name__, get_learning_rate.__name__]
