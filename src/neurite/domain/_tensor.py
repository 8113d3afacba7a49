"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the minimal properties a tensor
needs to take part in the layer graph and in optimization: its value, its
size, and the graph hooks used by backpropagation.

Notes
-----
The domain layer does not depend on numpy. The concrete implementation lives
in `neurite.infrastructure.tensor`.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from .types._tensor_size import TensorSize


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is a 3D numeric array that may carry a graph node describing
    how it was produced. Tensors without a node are graph leaves.
    """

    @property
    def value(self) -> Any:
        """
        Return the underlying storage, laid out `(depth, rows, columns)`.
        """
        ...

    @property
    def shape(self) -> list[int]:
        """
        Return the shape in `[columns, rows, depth]` order.
        """
        ...

    @property
    def size(self) -> TensorSize:
        """
        Return the shape as a `TensorSize`.
        """
        ...

    # Optional label, usually the kind of the producing layer.
    label: Optional[str]

    def is_leaf(self) -> bool:
        """
        Return True when the tensor has no graph node attached.
        """
        ...

    def set_graph(self, tensor: "ITensor") -> None:
        """
        Link this tensor to the tensor it was produced from.

        Parameters
        ----------
        tensor : ITensor
            The producing input.
        """
        ...

    def gradients(self, delta: "ITensor") -> Any:
        """
        Backpropagate `delta` from this tensor to the graph leaves.

        Parameters
        ----------
        delta : ITensor
            Gradient of the objective with respect to this tensor.

        Returns
        -------
        Any
            A gradient record holding input, weight and bias gradients.
        """
        ...
