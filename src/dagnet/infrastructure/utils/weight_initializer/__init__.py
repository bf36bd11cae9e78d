"""
Weight filler public API.

Importing this package registers the built-in fillers (``glorot``,
``constant``, ``zeros``, ``ones``) into the `WeightInitializer` registry via
import side effects.
"""

from ._glorot import *
from ._constants import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]
