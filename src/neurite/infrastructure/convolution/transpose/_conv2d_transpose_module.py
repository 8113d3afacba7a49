"""
2D transposed convolution layer.

`TransConv2d` upsamples its input: each input pixel scatters a copy of every
filter, scaled by the pixel value, into the output. The full scatter result
has `(in - 1) * stride + k` rows/columns and is cropped to:

- "same": `in * stride`, cropped from the top-left offset `(full - out) // 2`
- "valid": the full result

Filters are stored like `Conv2d`: `filter_count` stacks of `(depth, k_h, k_w)`.
"""

from __future__ import annotations

from ....domain.device._device_protocol import Padding
from ....domain.types._tensor_size import TensorSize
from ...ops.conv2d_cpu import conv2d_transpose_backward_cpu, transpose_crop
from ...serialization._serialization_core import register_layer
from ...tensor._tensor import Tensor
from ...tensor._tensor_context import BackwardResult
from .._conv2d_module import _FilterBankLayer


@register_layer()
class TransConv2d(_FilterBankLayer):
    """
    2D transposed convolution (scatter-add) layer.

    Parameters
    ----------
    filter_count : int
        Number of output channels.
    filter_size : int or pair, optional
        Kernel `(k_h, k_w)`. Defaults to `(3, 3)`.
    strides : int or pair, optional
        Upsampling stride. Defaults to `(1, 1)`.
    padding : Padding or str, optional
        "same" (default) or "valid".
    """

    def _geometry(self, input_size: TensorSize):
        return transpose_crop(
            (input_size.rows, input_size.columns),
            self.filter_size,
            self.strides,
            self.padding is Padding.SAME,
        )

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        (rows, columns), _ = self._geometry(input_size)
        return TensorSize(columns, rows, self.filter_count)

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)

        up = self.device.transconv2d(
            tensor,
            self.weights,
            filter_count=self.filter_count,
            strides=self.strides,
            padding=self.padding,
        )
        y = self._add_bias(up.value)

        x = tensor.value
        w = self.filters
        strides = self.strides
        _, crop = self._geometry(self.input_size)

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            g = grad_out.value
            dx, dw = conv2d_transpose_backward_cpu(x, w, g, strides, crop)
            return BackwardResult(
                (Tensor._wrap(dx),),
                (Tensor._wrap(dw.reshape(-1, dw.shape[2], dw.shape[3])), self._bias_gradient(g)),
            )

        return self._attach(y, tensor, backward_fn, crop=crop)
