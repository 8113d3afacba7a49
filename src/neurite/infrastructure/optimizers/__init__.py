"""
Optimizers over `Sequential` graphs.

Exports
-------
- Optimizer, FitOutput : shared batch machinery and the `fit` result
- Adam, MomentState    : Adam update rule and its per-layer moment arena
- SGD                  : plain gradient descent
- GradientAccumulator  : thread-safe per-batch gradient sums
"""

from ._gradient_accumulator import GradientAccumulator
from ._base import FitOutput, Optimizer
from ._adam import Adam, MomentState
from ._sgd import SGD

__all__ = [
    "Adam",
    "FitOutput",
    "GradientAccumulator",
    "MomentState",
    "Optimizer",
    "SGD",
]
