"""
Dropout regularization layer.

This module implements inverted dropout. During training, activations are
multiplied by a fixed mask in which each element is kept with probability
`1 - rate` and scaled by `1 / (1 - rate)`. During inference the layer is the
identity.

Design notes
------------
- The mask is drawn from the layer's generator (seeded through
  `Sequential(seed=...)`), so runs are reproducible.
- A mask stays fixed for a whole batch: every sample processed before the next
  `apply()` sees the same mask. `apply()` (called once per optimizer step)
  draws a fresh one.
- Masks can be injected through the `mask` property, mainly for tests.
- The layer always produces a graph node, in inference mode too, so gradient
  lists stay aligned with layer positions.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layer import Gradient
from .._layer import Layer
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


@register_layer()
class Dropout(Layer):
    """
    Inverted dropout layer.

    Parameters
    ----------
    rate : float, optional
        Probability of dropping an element. Must satisfy `0 <= rate < 1`.
        Defaults to 0.5.
    """

    def __init__(self, rate: float = 0.5, **kwargs: Any) -> None:
        if not 0.0 <= rate < 1.0:
            raise ValueError("Dropout rate must be in [0, 1).")
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)
        self.rate = float(rate)
        self._mask: Optional[np.ndarray] = None
        self._mask_lock = threading.Lock()

    def _build(self) -> None:
        self.regenerate_mask()

    def regenerate_mask(self) -> None:
        """
        Draw a new scaled keep-mask from the layer's generator.
        """
        keep = 1.0 - self.rate
        draw = self.rng.random(self.input_size.value_shape) < keep
        with self._mask_lock:
            self._mask = (draw / keep).astype(np.float32)

    @property
    def mask(self) -> Optional[np.ndarray]:
        """Current scaled mask (`0` or `1 / (1 - rate)` per element)."""
        return self._mask

    @mask.setter
    def mask(self, value: Any) -> None:
        arr = Tensor(value).value
        if self.input_size is not None and arr.shape != self.input_size.value_shape:
            raise ShapeMismatchError(
                "Dropout mask does not match the input size",
                expected=self.input_size.as_list(),
                actual=Tensor._wrap(arr).shape,
            )
        with self._mask_lock:
            self._mask = arr

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)

        if not self.is_training or self.rate == 0.0:
            mask = None
            y = tensor.value.copy()
        else:
            with self._mask_lock:
                mask = self._mask
            y = tensor.value * mask

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            g = grad_out.value if mask is None else grad_out.value * mask
            return BackwardResult((Tensor._wrap(g.copy()),), (Tensor.empty(), Tensor.empty()))

        return self._attach(y, tensor, backward_fn)

    def apply(self, gradients: Gradient, learning_rate: float) -> None:
        """
        Draw the next mask. Dropout has no parameters to update.
        """
        if self.rate > 0.0:
            self.regenerate_mask()

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["rate"] = self.rate
        return cfg

    def state(self) -> Dict[str, np.ndarray]:
        state = super().state()
        state["mask"] = (
            self._mask.copy()
            if self._mask is not None
            else np.zeros((0, 0, 0), dtype=np.float32)
        )
        return state

    def _load_arrays(self, arrays: Dict[str, np.ndarray]) -> None:
        super()._load_arrays(arrays)
        if arrays["mask"].size:
            with self._mask_lock:
                self._mask = arrays["mask"].copy()
