"""
Activation layers.

Elementwise activations delegate both the function and its derivative to the
layer's device (`device.activate`). Their backward rule is the chain rule
`dx = g * f'(x)` evaluated on the input captured at forward time.

`Softmax` is a whole-tensor reduction and is computed here directly. Its
backward passes the upstream gradient through unchanged, because it is meant
to be paired with a loss whose derivative is already taken with respect to the
logits (`CrossEntropySoftmax`, `p - y`).

Notes
-----
These layers are stateless except for `LeakyReLu`, which stores its negative
slope `limit`.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict

import numpy as np

from ..domain.device._device_protocol import ActivationKind
from ..domain.model._stateless_mixin import StatelessConfigMixin
from ._layer import Layer
from .serialization._serialization_core import register_layer
from .tensor._tensor import Tensor
from .tensor._tensor_context import BackwardResult


class _Activation(Layer):
    """
    Base class for elementwise activations evaluated by the device.
    """

    activation: ClassVar[ActivationKind] = ActivationKind.NONE

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)

    @property
    def limit(self) -> float:
        return 0.01

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        kind, limit, device = self.activation, self.limit, self.device
        out = device.activate(tensor, kind, limit=limit)
        x = tensor.detached()

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            slope = device.activate(x, kind, derivative=True, limit=limit)
            return BackwardResult(
                (Tensor._wrap(grad_out.value * slope.value),),
                (Tensor.empty(), Tensor.empty()),
            )

        return self._attach(out.value, tensor, backward_fn)


@register_layer()
class ReLu(StatelessConfigMixin, _Activation):
    """`max(0, x)`"""

    activation = ActivationKind.RELU


@register_layer()
class LeakyReLu(_Activation):
    """
    Leaky rectifier: `x` for positive inputs, `limit * x` otherwise.

    Parameters
    ----------
    limit : float, optional
        Negative slope. Defaults to 0.01.
    """

    activation = ActivationKind.LEAKY_RELU

    def __init__(self, limit: float = 0.01, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._limit = float(limit)

    @property
    def limit(self) -> float:
        return self._limit

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["limit"] = self._limit
        return cfg


@register_layer()
class Sigmoid(StatelessConfigMixin, _Activation):
    """`1 / (1 + exp(-x))`"""

    activation = ActivationKind.SIGMOID


@register_layer()
class Tanh(StatelessConfigMixin, _Activation):
    activation = ActivationKind.TANH


@register_layer()
class Swish(StatelessConfigMixin, _Activation):
    """`x * sigmoid(x)`"""

    activation = ActivationKind.SWISH


@register_layer()
class SeLu(StatelessConfigMixin, _Activation):
    """
    Scaled exponential linear unit with the standard self-normalizing
    constants (`alpha ≈ 1.6733`, `scale ≈ 1.0507`).
    """

    activation = ActivationKind.SELU


@register_layer()
class Softmax(StatelessConfigMixin, Layer):
    """
    Softmax over the flattened input.

    Computes `exp(x_i - max x) / sum_j exp(x_j - max x)`. The max subtraction
    keeps large logits from overflowing.
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        x = tensor.value.astype(np.float64)
        e = np.exp(x - np.max(x))
        y = e / np.sum(e)

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            return BackwardResult(
                (Tensor._wrap(grad_out.value.copy()),), (Tensor.empty(), Tensor.empty())
            )

        return self._attach(y, tensor, backward_fn)
