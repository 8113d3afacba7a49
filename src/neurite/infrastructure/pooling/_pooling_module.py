"""
2D pooling layers.

- `MaxPool`: records the arg-max position of every window in the forward pass;
  backward scatters the gradient to exactly those positions.
- `AvgPool`: averages each window; backward spreads the gradient evenly.

Pooling runs independently on every depth slice, so the output depth equals
the input depth. Padding follows the convolution rules ("valid" / "same").
"""

from __future__ import annotations

from typing import Any, Dict, Union

from ...domain.device._device_protocol import Padding
from ...domain.types._tensor_size import TensorSize
from .._layer import Layer
from ..convolution._conv2d_module import PairLike, as_pair
from ..ops.conv2d_cpu import same_padding, valid_output
from ..ops.pool2d_cpu import (
    avgpool2d_backward_cpu,
    avgpool2d_forward_cpu,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


class _Pool2d(Layer):
    """
    Shared geometry for 2D pooling layers.

    Parameters
    ----------
    pool_size : int or pair, optional
        Window `(k_h, k_w)`. Defaults to `(2, 2)`.
    strides : int or pair, optional
        Window stride. Defaults to `(2, 2)`.
    padding : Padding or str, optional
        "valid" (default) or "same".
    """

    def __init__(
        self,
        pool_size: PairLike = (2, 2),
        strides: PairLike = (2, 2),
        padding: Union[Padding, str] = Padding.VALID,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)
        self.pool_size = as_pair(pool_size, "pool_size")
        self.strides = as_pair(strides, "strides")
        self.padding = Padding(padding)

    def _geometry(self, input_size: TensorSize):
        size = (input_size.rows, input_size.columns)
        if self.padding is Padding.SAME:
            return same_padding(size, self.pool_size, self.strides)
        return valid_output(size, self.pool_size, self.strides), (0, 0, 0, 0)

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        (rows, columns), _ = self._geometry(input_size)
        return TensorSize(max(columns, 0), max(rows, 0), input_size.depth)

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            pool_size=list(self.pool_size),
            strides=list(self.strides),
            padding=self.padding.value,
        )
        return cfg


@register_layer()
class MaxPool(_Pool2d):
    """
    Max pooling layer.
    """

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        out_hw, pad = self._geometry(self.input_size)
        y, argmax = maxpool2d_forward_cpu(
            tensor.value, self.pool_size, self.strides, pad, out_hw
        )
        x_shape = tensor.value.shape

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            dx = maxpool2d_backward_cpu(grad_out.value, argmax, x_shape, pad)
            return BackwardResult((Tensor._wrap(dx),), (Tensor.empty(), Tensor.empty()))

        return self._attach(y, tensor, backward_fn, argmax=argmax)


@register_layer()
class AvgPool(_Pool2d):
    """
    Average pooling layer (padding counts as zeros).
    """

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        out_hw, pad = self._geometry(self.input_size)
        y = avgpool2d_forward_cpu(tensor.value, self.pool_size, self.strides, pad, out_hw)
        x_shape = tensor.value.shape
        kernel, strides = self.pool_size, self.strides

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            dx = avgpool2d_backward_cpu(grad_out.value, x_shape, kernel, strides, pad)
            return BackwardResult((Tensor._wrap(dx),), (Tensor.empty(), Tensor.empty()))

        return self._attach(y, tensor, backward_fn)
