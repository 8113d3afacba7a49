"""
Loss functions for neurite.

Losses are the terminal step of a training sample: `calculate` reports the
scalar loss and `derivative` produces the delta that seeds
`Tensor.gradients()` on the network output.

Currently implemented losses:
- MeanSquaredError      : mean((p - y)^2)
- CrossEntropy          : -sum(y * log(p)) on probability inputs
- CrossEntropySoftmax   : cross entropy whose derivative is taken with respect
                          to the logits of a preceding `Softmax` (`p - y`)
- BinaryCrossEntropy    : -mean(y log p + (1 - y) log(1 - p))

Design notes
------------
- Probability inputs are clipped to `[EPSILON, 1 - EPSILON]` before logs and
  divisions.
- Predictions and targets must have the same element count; their shapes may
  differ (e.g. a `[n, 1, 1]` output against a flat label list). The
  derivative always has the prediction's shape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Type

import numpy as np

from ..domain._errors import DataError
from .tensor._tensor import Tensor

EPSILON = 1e-7


def _pair(predicted: Any, correct: Any) -> tuple[np.ndarray, np.ndarray]:
    p = predicted.value if isinstance(predicted, Tensor) else Tensor(predicted).value
    y = correct.value if isinstance(correct, Tensor) else Tensor(correct).value
    if p.size != y.size:
        raise DataError(
            f"Prediction has {p.size} values but the label has {y.size}."
        )
    return p.astype(np.float64), y.reshape(p.shape).astype(np.float64)


class LossFunction(ABC):
    """
    Base class for losses.

    Subclasses implement `_calculate` and `_derivative` on float64 arrays of
    identical shape.
    """

    name: ClassVar[str] = "loss"

    def calculate(self, predicted: Any, correct: Any) -> float:
        """
        Return the scalar loss of one sample.
        """
        p, y = _pair(predicted, correct)
        return float(self._calculate(p, y))

    def derivative(self, predicted: Any, correct: Any) -> Tensor:
        """
        Return `dL/dpredicted` shaped like the prediction.
        """
        p, y = _pair(predicted, correct)
        return Tensor._wrap(self._derivative(p, y).astype(np.float32))

    @abstractmethod
    def _calculate(self, p: np.ndarray, y: np.ndarray) -> float: ...

    @abstractmethod
    def _derivative(self, p: np.ndarray, y: np.ndarray) -> np.ndarray: ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class MeanSquaredError(LossFunction):
    name = "mse"

    def _calculate(self, p, y):
        return np.mean(np.square(p - y))

    def _derivative(self, p, y):
        return 2.0 * (p - y) / p.size


class CrossEntropy(LossFunction):
    """
    Categorical cross entropy on probability inputs with one-hot targets.
    """

    name = "cross_entropy"

    def _calculate(self, p, y):
        return -np.sum(y * np.log(np.clip(p, EPSILON, 1.0 - EPSILON)))

    def _derivative(self, p, y):
        return -y / np.clip(p, EPSILON, 1.0 - EPSILON)


class CrossEntropySoftmax(CrossEntropy):
    """
    Cross entropy paired with a final `Softmax` layer.

    The derivative is the combined softmax + cross-entropy gradient `p - y`,
    which `Softmax` passes through unchanged.
    """

    name = "cross_entropy_softmax"

    def _derivative(self, p, y):
        return p - y


class BinaryCrossEntropy(LossFunction):
    name = "binary_cross_entropy"

    def _calculate(self, p, y):
        q = np.clip(p, EPSILON, 1.0 - EPSILON)
        return -np.mean(y * np.log(q) + (1.0 - y) * np.log(1.0 - q))

    def _derivative(self, p, y):
        q = np.clip(p, EPSILON, 1.0 - EPSILON)
        return (q - y) / (q * (1.0 - q)) / p.size


_LOSSES: Dict[str, Type[LossFunction]] = {
    cls.name: cls
    for cls in (MeanSquaredError, CrossEntropy, CrossEntropySoftmax, BinaryCrossEntropy)
}


def get_loss(name: str) -> LossFunction:
    """
    Instantiate a loss by name (e.g. ``"mse"``, ``"cross_entropy_softmax"``).

    Raises
    ------
    ValueError
        If the name is unknown.
    """
    try:
        return _LOSSES[name]()
    except KeyError as e:
        raise ValueError(
            f"Unknown loss {name!r}; available: {', '.join(sorted(_LOSSES))}"
        ) from e
