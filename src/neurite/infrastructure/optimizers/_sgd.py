"""
Stochastic Gradient Descent (SGD) optimizer.

SGD shares all batch machinery with `Optimizer`; only the update rule differs:

    delta = lr * (g + weight_decay * p)

The delta is handed to `Layer.apply`, which subtracts it. Momentum and
Nesterov variants are not implemented.
"""

from __future__ import annotations

import numpy as np

from ...domain._layer import Gradient
from .._layer import Layer
from ..tensor._tensor import Tensor
from ._base import Optimizer


class SGD(Optimizer):
    """
    Plain SGD over a `Sequential` graph.

    Parameters
    ----------
    graph : Sequential
        Compiled graph to optimize.
    learning_rate : float, optional
        Step size. Defaults to 1e-3.
    weight_decay : float, optional
        Classical (coupled) L2 coefficient. Must be non-negative.
    **kwargs
        Forwarded to `Optimizer`.
    """

    def __init__(
        self,
        graph,
        *,
        learning_rate: float = 0.001,
        weight_decay: float = 0.0,
        **kwargs,
    ) -> None:
        super().__init__(graph, learning_rate=learning_rate, **kwargs)
        self.weight_decay = float(weight_decay)
        if self.weight_decay < 0.0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")

    def _delta(self, index: int, layer: Layer, weights: Tensor, biases: Tensor) -> Gradient:
        return Gradient(
            self._scaled(weights, layer.weights),
            self._scaled(biases, layer.biases),
        )

    def _scaled(self, grad: Tensor, param: Tensor) -> Tensor:
        g = grad.value
        if self.weight_decay != 0.0 and param.value.shape == g.shape:
            g = g + np.float32(self.weight_decay) * param.value
        return Tensor._wrap((np.float32(self.learning_rate) * g).astype(np.float32))
