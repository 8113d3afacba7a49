"""
Layer normalization.

`LayerNormalize` normalizes each sample over all of its elements and applies
an elementwise affine transform:

    x̂ = (x - mean(x)) / sqrt(var(x) + epsilon)
    y = gamma * x̂ + beta

`gamma` is stored in `weights` (initialized to ones) and `beta` in `biases`
(initialized to zeros); both are shaped like the input and are trained by the
optimizer like any other parameter.

Backward
--------
With `N` the element count and `dx̂ = g * gamma`:

    dx     = (1 / N) / std * (N * dx̂ - sum(dx̂) - x̂ * sum(dx̂ * x̂))
    dgamma = g * x̂
    dbeta  = g
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from .._layer import Layer
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


@register_layer()
class LayerNormalize(Layer):
    """
    Per-sample normalization with elementwise gamma/beta.

    Parameters
    ----------
    epsilon : float, optional
        Variance smoothing term. Defaults to 1e-5.
    """

    def __init__(self, epsilon: float = 1e-5, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if epsilon <= 0.0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        self.epsilon = float(epsilon)

    def _build(self) -> None:
        self.weights = Tensor.fill_with(1.0, self.input_size)
        self.biases = (
            Tensor.zeros(self.input_size) if self.bias_enabled else Tensor.empty()
        )

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        x = tensor.value.astype(np.float64)
        n = float(x.size)
        mean = np.mean(x)
        std = float(np.sqrt(np.mean(np.square(x - mean)) + self.epsilon))
        x_norm = (x - mean) / std

        gamma = self.weights.value.astype(np.float64)
        y = gamma * x_norm
        if self.bias_enabled and not self.biases.is_empty():
            y = y + self.biases.value
        bias_enabled = self.bias_enabled

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            g = grad_out.value.astype(np.float64)
            dx_norm = g * gamma
            dx = (1.0 / n) / std * (
                n * dx_norm - np.sum(dx_norm) - x_norm * np.sum(dx_norm * x_norm)
            )
            d_gamma = Tensor._wrap((g * x_norm).astype(np.float32))
            d_beta = Tensor._wrap(g.astype(np.float32)) if bias_enabled else Tensor.empty()
            return BackwardResult((Tensor._wrap(dx.astype(np.float32)),), (d_gamma, d_beta))

        return self._attach(y, tensor, backward_fn)

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["epsilon"] = self.epsilon
        return cfg
