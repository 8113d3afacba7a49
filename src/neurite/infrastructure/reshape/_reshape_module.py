"""
Shape-only layers.

`Reshape` reinterprets the input values under a new `[columns, rows, depth]`
size with the same element count; `Flatten` is the special case producing a
single column `[count, 1, 1]`. Values are reordered in `(depth, rows,
columns)` order and the backward rule reshapes the gradient back.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Union

from ...domain._errors import ShapeMismatchError
from ...domain.model._stateless_mixin import StatelessConfigMixin
from ...domain.types._tensor_size import TensorSize
from .._layer import Layer, as_size
from ..serialization._serialization_core import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import BackwardResult


class _ReshapeBase(Layer):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("bias_enabled", False)
        super().__init__(**kwargs)

    def forward(self, tensor: Tensor) -> Tensor:
        self._check_input(tensor)
        in_shape = tensor.value.shape
        y = tensor.value.reshape(self.output_size.value_shape).copy()

        def backward_fn(grad_out: Tensor) -> BackwardResult:
            return BackwardResult(
                (Tensor._wrap(grad_out.value.reshape(in_shape).copy()),),
                (Tensor.empty(), Tensor.empty()),
            )

        return self._attach(y, tensor, backward_fn)


@register_layer()
class Reshape(_ReshapeBase):
    """
    Reshape to a fixed size.

    Parameters
    ----------
    target_size : TensorSize or Sequence[int]
        Output size `[columns, rows, depth]`.
    """

    def __init__(self, target_size: Union[TensorSize, Sequence[int]], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.target_size = as_size(target_size)

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        if input_size.count != self.target_size.count:
            raise ShapeMismatchError(
                "Reshape must preserve the element count",
                expected=self.target_size.as_list(),
                actual=input_size.as_list(),
            )
        return self.target_size

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["target_size"] = self.target_size.as_list()
        return cfg


@register_layer()
class Flatten(StatelessConfigMixin, _ReshapeBase):
    """
    Flatten to a single column of `count` values.
    """

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        return TensorSize(input_size.count, 1, 1)
