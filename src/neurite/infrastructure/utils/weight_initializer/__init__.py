"""
Weight initialization public API.

Importing this package registers every built-in initializer (Xavier, He and
constants) into the `WeightInitializer` registry via import side effects.

Exports
-------
- WeightInitializer:
    The registry-backed dispatcher. Concrete initializers are reached through
    their registry names.
"""

from ._xavier import *
from ._kaiming import *
from ._constants import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]
