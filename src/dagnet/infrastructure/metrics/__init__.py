from ._confusion_matrix import Accuracy, ConfusionMatrix, Sample

__all__ = [ConfusionMatrix.__name__, Accuracy.__name__, Sample.__name__]
