"""
2D convolution layer.

This module defines `Conv2d`, a stateful layer that owns a bank of filters and
an optional per-filter bias, and delegates the forward kernel to the layer's
device.

Storage
-------
- filters: `filter_count` filters of `(depth, k_h, k_w)` stacked along depth,
  so `weights.value.shape == (filter_count * depth, k_h, k_w)`. The
  `filters` property exposes the `(filter_count, depth, k_h, k_w)` view.
- biases: one value per filter, `biases.shape == [filter_count, 1, 1]`.

Padding
-------
- "valid": `out = (in - k) // stride + 1`
- "same": `out = ceil(in / stride)`; the extra padding row/column (when the
  total is odd) goes at the bottom/right.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple, Union

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain.device._device_protocol import Padding
from ...domain.types._tensor_size import TensorSize
from .._layer import Layer
from ..ops.conv2d_cpu import conv2d_backward_cpu, same_padding, valid_output
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult

PairLike = Union[int, Sequence[int]]


def as_pair(v: PairLike, name: str) -> Tuple[int, int]:
    """
    Normalize an int or pair into a validated positive `(rows, columns)` pair.
    """
    pair = (int(v), int(v)) if isinstance(v, (int, np.integer)) else tuple(int(i) for i in v)
    if len(pair) != 2 or min(pair) <= 0:
        raise ValueError(f"{name} must be a positive int or pair, got {v!r}")
    return pair


class _FilterBankLayer(Layer):
    """
    Shared bookkeeping for layers that own stacked 2D filters.
    """

    def __init__(
        self,
        filter_count: int,
        filter_size: PairLike = (3, 3),
        strides: PairLike = (1, 1),
        padding: Union[Padding, str] = Padding.SAME,
        **kwargs: Any,
    ) -> None:
        if int(filter_count) <= 0:
            raise ValueError(f"filter_count must be positive, got {filter_count}")
        super().__init__(**kwargs)
        self.filter_count = int(filter_count)
        self.filter_size = as_pair(filter_size, "filter_size")
        self.strides = as_pair(strides, "strides")
        self.padding = Padding(padding)

    @property
    def filters(self) -> np.ndarray:
        """
        `(filter_count, depth, k_h, k_w)` view of the stacked weights.
        """
        depth = self.weights.value.shape[0] // self.filter_count
        return self.weights.value.reshape(
            self.filter_count, depth, *self.weights.value.shape[1:]
        )

    @filters.setter
    def filters(self, value: Any) -> None:
        arr = np.asarray(value, dtype=np.float32)
        if arr.ndim == 3:
            arr = arr[:, None, :, :]
        if arr.ndim != 4 or arr.shape[0] != self.filter_count:
            raise ValueError(
                f"Expected {self.filter_count} filters shaped (depth, k_h, k_w), "
                f"got array of shape {arr.shape}"
            )
        if self.is_compiled and arr.shape[1:] != (self.input_size.depth, *self.filter_size):
            raise ShapeMismatchError(
                "Filters do not match the compiled layer",
                expected=[self.filter_count, self.input_size.depth, *self.filter_size],
                actual=list(arr.shape),
            )
        self.weights = Tensor(arr.reshape(-1, arr.shape[2], arr.shape[3]))

    def _build(self) -> None:
        depth = self.input_size.depth
        k_h, k_w = self.filter_size
        self.weights = self._initialize(
            TensorSize(k_w, k_h, self.filter_count * depth),
            fan_in=depth * k_h * k_w,
            fan_out=self.filter_count * k_h * k_w,
        )
        self.biases = (
            Tensor.zeros(TensorSize(self.filter_count, 1, 1))
            if self.bias_enabled
            else Tensor.empty()
        )

    def _add_bias(self, y: np.ndarray) -> np.ndarray:
        if self.bias_enabled and not self.biases.is_empty():
            y = y + self.biases.value.reshape(-1)[:, None, None]
        return y

    def _bias_gradient(self, g: np.ndarray) -> Tensor:
        if not self.bias_enabled:
            return Tensor.empty()
        return Tensor._wrap(g.sum(axis=(1, 2)).reshape(1, 1, -1))

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            filter_count=self.filter_count,
            filter_size=list(self.filter_size),
            strides=list(self.strides),
            padding=self.padding.value,
        )
        return cfg


@register_layer()
class Conv2d(_FilterBankLayer):
    """
    2D cross-correlation layer.

    Parameters
    ----------
    filter_count : int
        Number of output channels.
    filter_size : int or pair, optional
        Kernel `(k_h, k_w)`. Defaults to `(3, 3)`.
    strides : int or pair, optional
        Stride `(s_h, s_w)`. Defaults to `(1, 1)`.
    padding : Padding or str, optional
        "same" (default) or "valid".
    """

    def _geometry(self, input_size: TensorSize):
        size = (input_size.rows, input_size.columns)
        if self.padding is Padding.SAME:
            return same_padding(size, self.filter_size, self.strides)
        return valid_output(size, self.filter_size, self.strides), (0, 0, 0, 0)

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        (rows, columns), _ = self._geometry(input_size)
        return TensorSize(max(columns, 0), max(rows, 0), self.filter_count)

    def forward(self, tensor: Tensor) -> Tensor:
        """
        Convolve the input with every filter and add the per-filter bias.
        """
        self._check_input(tensor)

        conv = self.device.conv2d(
            tensor,
            self.weights,
            filter_count=self.filter_count,
            strides=self.strides,
            padding=self.padding,
        )
        y = self._add_bias(conv.value)

        x = tensor.value
        w = self.filters
        strides = self.strides
        _, pad = self._geometry(self.input_size)

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            g = grad_out.value
            dx, dw = conv2d_backward_cpu(x, w, g, strides, pad)
            return BackwardResult(
                (Tensor._wrap(dx),),
                (Tensor._wrap(dw.reshape(-1, dw.shape[2], dw.shape[3])), self._bias_gradient(g)),
            )

        return self._attach(y, tensor, backward_fn, padding=pad)
