"""
Concrete Tensor implementation (numpy backend) and graph traversal.

This module provides the concrete `Tensor` that satisfies the domain-level
`ITensor` protocol. A tensor is always three dimensional: its storage is a
float32 numpy array laid out `(depth, rows, columns)`, while `shape` reports
`[columns, rows, depth]`.

Design notes
------------
- Tensors produced by layers carry a `Context` (the graph node). Tensors built
  from raw data carry none and are graph leaves.
- Arithmetic operators return *leaf* tensors. Differentiation happens at the
  layer level: each layer attaches its own backward rule to its output, so the
  graph is a chain of layer nodes rather than a graph of scalar ops.
- `gradients(delta)` walks the graph from this tensor back to its leaves and
  collects one (input, weight, bias) gradient triple per node visited.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from ...domain._errors import ConfigurationError, ShapeMismatchError
from ...domain._tensor import ITensor
from ...domain.types._tensor_size import TensorSize
from ._tensor_context import Context

Number = Union[int, float]

DTYPE = np.float32


def _as_value(data: Any) -> np.ndarray:
    """
    Convert scalars and nested sequences into a 3D float32 array.

    1D data becomes a single row, 2D data a single depth slice.
    """
    if data is None:
        return np.zeros((0, 0, 0), dtype=DTYPE)
    if isinstance(data, Tensor):
        return data.value.copy()

    arr = np.array(data, dtype=DTYPE)
    if arr.ndim == 0:
        return arr.reshape(1, 1, 1)
    if arr.ndim == 1:
        return arr.reshape(1, 1, arr.shape[0])
    if arr.ndim == 2:
        return arr.reshape(1, arr.shape[0], arr.shape[1])
    if arr.ndim == 3:
        return arr
    raise ValueError(f"Tensor supports at most 3 dimensions, got {arr.ndim}")


@dataclass
class TensorGradient:
    """
    Result of backpropagating through a tensor graph.

    Attributes
    ----------
    input : list[Tensor]
        Gradient with respect to the input of every visited node, ordered from
        the graph input to the output. `input[0]` is the gradient with respect
        to the original network input.
    weights : list[Tensor]
        Weight gradient of every visited node, in the same order.
    biases : list[Tensor]
        Bias gradient of every visited node, in the same order.
    """

    input: List["Tensor"] = field(default_factory=list)
    weights: List["Tensor"] = field(default_factory=list)
    biases: List["Tensor"] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.weights)


class Tensor(ITensor):
    """
    Three dimensional numpy-backed tensor with an optional graph node.

    Parameters
    ----------
    value : Any, optional
        Scalar, nested sequence or numpy array. 1D/2D data is promoted to 3D.
        Omitted values produce an empty tensor.
    context : Context | None, optional
        Graph node describing how this tensor was produced.
    label : str | None, optional
        Free-form label, usually the producing layer's kind.

    Notes
    -----
    The constructor copies `value`, so later mutation of the source array never
    leaks into the tensor.
    """

    def __init__(
        self,
        value: Any = None,
        *,
        context: Optional[Context] = None,
        label: Optional[str] = None,
    ) -> None:
        self._value = _as_value(value)
        self.context = context
        self.label = label

    @classmethod
    def _wrap(
        cls,
        arr: np.ndarray,
        *,
        context: Optional[Context] = None,
        label: Optional[str] = None,
    ) -> "Tensor":
        """
        Wrap a 3D array without copying it.
        """
        t = cls.__new__(cls)
        t._value = np.asarray(arr, dtype=DTYPE)
        if t._value.ndim != 3:
            raise ValueError(f"Tensor storage must be 3D, got shape {t._value.shape}")
        t.context = context
        t.label = label
        return t

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    @classmethod
    def empty(cls) -> "Tensor":
        """Return a tensor with no elements (used for absent parameters)."""
        return cls()

    @classmethod
    def zeros(cls, size: TensorSize) -> "Tensor":
        return cls._wrap(np.zeros(size.value_shape, dtype=DTYPE))

    @classmethod
    def fill_with(cls, value: Number, size: TensorSize) -> "Tensor":
        """
        Return a tensor of the given size filled with `value`.
        """
        return cls._wrap(np.full(size.value_shape, float(value), dtype=DTYPE))

    @classmethod
    def zeros_like(cls, other: "Tensor") -> "Tensor":
        return cls._wrap(np.zeros_like(other.value))

    # ------------------------------------------------------------------
    # Core properties
    # ------------------------------------------------------------------
    @property
    def value(self) -> np.ndarray:
        return self._value

    @value.setter
    def value(self, data: Any) -> None:
        self._value = _as_value(data)

    @property
    def shape(self) -> list[int]:
        depth, rows, columns = self._value.shape
        return [columns, rows, depth]

    @property
    def size(self) -> TensorSize:
        depth, rows, columns = self._value.shape
        return TensorSize(columns, rows, depth)

    def is_empty(self) -> bool:
        return self._value.size == 0

    def is_leaf(self) -> bool:
        return self.context is None

    def __repr__(self) -> str:
        label = f", label={self.label!r}" if self.label else ""
        op = f", op={self.context.op!r}" if self.context is not None else ""
        return f"Tensor(shape={self.shape}{label}{op})"

    # ------------------------------------------------------------------
    # Graph
    # ------------------------------------------------------------------
    def set_graph(self, tensor: "Tensor") -> None:
        """
        Link this tensor to the input it was produced from.

        Parameters
        ----------
        tensor : Tensor
            The producing input. Becomes the sole parent of this tensor's node.

        Raises
        ------
        ConfigurationError
            If this tensor has no graph node to link.
        """
        if self.context is None:
            raise ConfigurationError(
                "Cannot set the graph of a leaf tensor; it has no backward rule."
            )
        if tensor is self:
            raise ConfigurationError("A tensor cannot be its own graph input.")
        self.context.parents = (tensor,)

    def gradients(self, delta: "Tensor") -> TensorGradient:
        """
        Backpropagate `delta` from this tensor to the graph leaves.

        The traversal is iterative and single threaded. At each node the node's
        backward function maps the incoming gradient to gradients for its
        parents (which are then visited) and for the producing layer's
        parameters (which are collected).

        Parameters
        ----------
        delta : Tensor
            Gradient of the objective with respect to this tensor.

        Returns
        -------
        TensorGradient
            Per-node input/weight/bias gradients ordered input-first. For a leaf
            tensor the result is `TensorGradient(input=[delta])`.

        Raises
        ------
        ShapeMismatchError
            If a gradient does not match the size of the node it is fed to.
        """
        delta = delta if isinstance(delta, Tensor) else Tensor(delta)

        if self.context is None:
            return TensorGradient(input=[delta])

        inputs: deque[Tensor] = deque()
        weights: deque[Tensor] = deque()
        biases: deque[Tensor] = deque()

        pending: list[tuple[Tensor, Tensor]] = [(self, delta)]
        while pending:
            node, grad = pending.pop()
            ctx = node.context
            if ctx is None:
                continue

            if grad.value.shape != node.value.shape:
                raise ShapeMismatchError(
                    f"Gradient fed to '{ctx.op}' does not match its output",
                    expected=node.shape,
                    actual=grad.shape,
                )

            result = ctx.backpropagate(grad)
            input_grads = list(result.input_gradients)
            others = list(result.other_gradients)
            while len(others) < 2:
                others.append(Tensor.empty())

            if ctx.parents and len(input_grads) != len(ctx.parents):
                raise ConfigurationError(
                    f"'{ctx.op}' returned {len(input_grads)} input gradients "
                    f"for {len(ctx.parents)} parents."
                )

            inputs.appendleft(input_grads[0] if input_grads else Tensor.empty())
            weights.appendleft(others[0])
            biases.appendleft(others[1])

            for parent, g in zip(ctx.parents, input_grads):
                pending.append((parent, g))

        return TensorGradient(
            input=list(inputs), weights=list(weights), biases=list(biases)
        )

    def detached(self) -> "Tensor":
        """Return a leaf copy of this tensor."""
        return Tensor._wrap(self._value.copy(), label=self.label)

    # ------------------------------------------------------------------
    # Numeric helpers
    # ------------------------------------------------------------------
    def to_numpy(self) -> np.ndarray:
        return self._value.copy()

    def flatten(self) -> np.ndarray:
        """Return the values as a flat 1D array (depth, row, column order)."""
        return self._value.reshape(-1).copy()

    def sum(self) -> float:
        return float(np.sum(self._value, dtype=np.float64))

    def norm(self) -> float:
        """Euclidean norm of all elements."""
        return float(np.sqrt(np.sum(np.square(self._value, dtype=np.float64))))

    def l2_normalized(self) -> "Tensor":
        """
        Return a copy scaled to unit L2 norm. Zero tensors are returned as-is.
        """
        n = self.norm()
        if n == 0.0:
            return self.detached()
        return Tensor._wrap(self._value / DTYPE(n))

    def clip(self, limit: float) -> None:
        """Clamp every element in place to `[-limit, limit]`."""
        limit = abs(float(limit))
        np.clip(self._value, -limit, limit, out=self._value)

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self._value)))

    def is_value_equal(self, other: "Tensor", tolerance: float = 1e-6) -> bool:
        """
        Compare values elementwise within an absolute tolerance.
        """
        if self._value.shape != other.value.shape:
            return False
        return bool(np.allclose(self._value, other.value, rtol=0.0, atol=tolerance))

    # ------------------------------------------------------------------
    # Arithmetic (produces leaf tensors)
    # ------------------------------------------------------------------
    @staticmethod
    def _operand(other: Union["Tensor", Number, np.ndarray]) -> Any:
        return other.value if isinstance(other, Tensor) else other

    def _binary(self, other: Union["Tensor", Number], op) -> "Tensor":
        rhs = self._operand(other)
        if isinstance(rhs, np.ndarray) and rhs.shape != self._value.shape:
            raise ShapeMismatchError(
                "Tensor arithmetic requires matching shapes",
                expected=self.shape,
                actual=Tensor._wrap(rhs).shape if rhs.ndim == 3 else list(rhs.shape),
            )
        return Tensor._wrap(op(self._value, rhs).astype(DTYPE, copy=False))

    def __add__(self, other):
        return self._binary(other, np.add)

    def __radd__(self, other):
        return self._binary(other, np.add)

    def __sub__(self, other):
        return self._binary(other, np.subtract)

    def __rsub__(self, other):
        return Tensor._wrap((self._operand(other) - self._value).astype(DTYPE))

    def __mul__(self, other):
        return self._binary(other, np.multiply)

    def __rmul__(self, other):
        return self._binary(other, np.multiply)

    def __truediv__(self, other):
        return self._binary(other, np.divide)

    def __neg__(self):
        return Tensor._wrap(-self._value)


def stack_depth(tensors: Sequence[Tensor]) -> Tensor:
    """
    Concatenate tensors with matching rows/columns along depth.
    """
    if not tensors:
        return Tensor.empty()
    return Tensor._wrap(np.concatenate([t.value for t in tensors], axis=0))
