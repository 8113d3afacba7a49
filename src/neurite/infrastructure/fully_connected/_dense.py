"""
Dense (fully connected) layer.

`Dense` computes `y = W·x + b` where `x` is the flattened input. The weight
matrix `W` is shaped `(units, inputs)` and stored as a single depth slice, so
`weights.shape == [inputs, units, 1]`. The output is a single row of `units`
values (`output_size == [units, 1, 1]`).

Backward rule
-------------
With `g` the upstream gradient:

- `dx = Wᵀ·g` (reshaped to the input size)
- `dW = g ⊗ x`
- `db = g`
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ...domain.types._tensor_size import TensorSize
from .._layer import Layer
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


@register_layer()
class Dense(Layer):
    """
    Fully connected layer.

    Parameters
    ----------
    units : int
        Number of output units.
    **kwargs
        Common layer options (`input_size`, `trainable`, `bias_enabled`,
        `initializer`, `device`).

    Notes
    -----
    Any input size is accepted; the input is flattened in
    `(depth, rows, columns)` order.
    """

    def __init__(self, units: int, **kwargs: Any) -> None:
        if int(units) <= 0:
            raise ValueError(f"Dense units must be positive, got {units}")
        super().__init__(**kwargs)
        self.units = int(units)

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        return TensorSize(self.units, 1, 1)

    def _build(self) -> None:
        inputs = self.input_size.count
        self.weights = self._initialize(
            TensorSize(inputs, self.units, 1), fan_in=inputs, fan_out=self.units
        )
        self.biases = (
            Tensor.zeros(self.output_size) if self.bias_enabled else Tensor.empty()
        )

    def forward(self, tensor: Tensor) -> Tensor:
        """
        Compute `W·x + b`.

        Parameters
        ----------
        tensor : Tensor
            Input with size `input_size`.

        Returns
        -------
        Tensor
            Output of size `[units, 1, 1]` linked to `tensor`.
        """
        self._check_input(tensor)

        x = tensor.value.reshape(-1)
        w = self.weights.value[0]
        y = w @ x
        if self.bias_enabled and not self.biases.is_empty():
            y = y + self.biases.value.reshape(-1)

        in_shape = tensor.value.shape
        bias_enabled = self.bias_enabled

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            g = grad_out.value.reshape(-1)
            dx = (w.T @ g).reshape(in_shape)
            dw = np.outer(g, x)[None, :, :]
            db = Tensor._wrap(g.reshape(1, 1, -1).copy()) if bias_enabled else Tensor.empty()
            return BackwardResult((Tensor._wrap(dx),), (Tensor._wrap(dw), db))

        return self._attach(y.reshape(self.output_size.value_shape), tensor, backward_fn)

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["units"] = self.units
        return cfg
