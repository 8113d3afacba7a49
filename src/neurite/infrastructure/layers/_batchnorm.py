"""
Batch normalization layer.

`BatchNormalize` normalizes every depth slice of its input with its own
`BatchNormalizer`. During training each slice is normalized with its own
statistics and the moving statistics are updated; during inference the moving
statistics are used.

Parameter updates
-----------------
Gamma and beta are updated by a local SGD step inside the backward pass, using
the layer's own `learning_rate`. The layer therefore declares
`uses_optimizer = False`, exposes empty `weights`/`biases`, and `apply()` is a
no-op.

Thread safety
-------------
Backward closures capture each slice's `NormalizerCache`, so concurrent samples
never share forward intermediates. Gamma/beta and moving-statistic updates are
serialized by each normalizer's lock.
"""

from __future__ import annotations

from typing import Any, Dict, List

import numpy as np

from ...domain._layer import Gradient
from .._layer import Layer
from ..normalization._batch_normalizer import BatchNormalizer
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


@register_layer()
class BatchNormalize(Layer):
    """
    Per-channel batch normalization with locally trained gamma/beta.

    Parameters
    ----------
    gamma : float, optional
        Initial scale of every channel. Defaults to 1.
    beta : float, optional
        Initial shift of every channel. Defaults to 0.
    momentum : float, optional
        Moving-statistics decay. Defaults to 0.9.
    epsilon : float, optional
        Variance smoothing term. Defaults to 1e-5.
    learning_rate : float, optional
        Step size of the local gamma/beta update. Defaults to 0.01.
    """

    uses_optimizer = False

    def __init__(
        self,
        gamma: float = 1.0,
        beta: float = 0.0,
        momentum: float = 0.9,
        epsilon: float = 1e-5,
        learning_rate: float = 0.01,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)
        self.gamma = float(gamma)
        self.beta = float(beta)
        self.momentum = float(momentum)
        self.epsilon = float(epsilon)
        self.learning_rate = float(learning_rate)
        self.normalizers: List[BatchNormalizer] = []

    def _build(self) -> None:
        self.normalizers = [
            BatchNormalizer(
                self.gamma,
                self.beta,
                learning_rate=self.learning_rate,
                momentum=self.momentum,
                epsilon=self.epsilon,
            )
            for _ in range(self.input_size.depth)
        ]

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        training = self.is_training

        outputs = []
        caches = []
        for normalizer, channel in zip(self.normalizers, tensor.value):
            out, cache = normalizer.normalize(channel, training=training)
            outputs.append(out)
            caches.append(cache)
        y = np.stack(outputs, axis=0)

        normalizers = self.normalizers
        update = self.trainable

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            dx = np.stack(
                [
                    n.backward(g, cache, update=update)
                    for n, g, cache in zip(normalizers, grad_out.value, caches)
                ],
                axis=0,
            )
            return BackwardResult((Tensor._wrap(dx),), (Tensor.empty(), Tensor.empty()))

        return self._attach(y, tensor, backward_fn)

    def apply(self, gradients: Gradient, learning_rate: float) -> None:
        """No-op: gamma and beta are updated during backward."""

    def updated_parameters(self, gradients: Gradient) -> tuple[np.ndarray, np.ndarray]:
        return self.weights.value, self.biases.value

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            gamma=self.gamma,
            beta=self.beta,
            momentum=self.momentum,
            epsilon=self.epsilon,
            learning_rate=self.learning_rate,
        )
        return cfg

    def state(self) -> Dict[str, np.ndarray]:
        state = super().state()
        stats = np.array([n.statistics() for n in self.normalizers], dtype=np.float32)
        stats = stats.reshape(len(self.normalizers), 4)
        for i, key in enumerate(("gamma", "beta", "moving_mean", "moving_variance")):
            state[key] = stats[:, i].copy()
        return state

    def _load_arrays(self, arrays: Dict[str, np.ndarray]) -> None:
        super()._load_arrays(arrays)
        for i, n in enumerate(self.normalizers):
            n.restore(
                arrays["gamma"][i],
                arrays["beta"][i],
                arrays["moving_mean"][i],
                arrays["moving_variance"][i],
            )
