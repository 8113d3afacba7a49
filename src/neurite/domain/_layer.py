"""
Layer interface definitions.

This module defines the domain-level interface for network layers using
structural subtyping via `typing.Protocol`.

Every layer variant (dense, convolution, pooling, normalization, activation,
dropout, reshape) satisfies the same three-part contract:

- `forward(tensor)` produces an output tensor and attaches the backward rule
  to the output's graph node,
- `apply(gradients, learning_rate)` mutates the layer's parameters in place,
- `compile(input_size, rng)` fixes the output size and initializes parameters.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional, Protocol, runtime_checkable

from ._tensor import ITensor
from .types._tensor_size import TensorSize


class Gradient(NamedTuple):
    """
    Weight and bias gradient (or delta) pair for a single layer.

    Attributes
    ----------
    weights : ITensor
        Gradient with the same size as the layer's `weights`.
    biases : ITensor
        Gradient with the same size as the layer's `biases`.
    """

    weights: ITensor
    biases: ITensor


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer interface.

    Notes
    -----
    - `uses_optimizer` tells the optimizer whether the layer expects
      optimizer-adjusted deltas or the raw averaged gradients.
    - `output_size` is a pure function of `input_size` and the layer's
      structural hyperparameters. It is fixed by `compile()`.
    """

    input_size: Optional[TensorSize]
    output_size: Optional[TensorSize]
    weights: ITensor
    biases: ITensor
    trainable: bool
    bias_enabled: bool
    uses_optimizer: bool

    def compile(
        self, input_size: Optional[TensorSize] = None, rng: Any = None
    ) -> None:
        """
        Finalize sizes and initialize parameters.

        Parameters
        ----------
        input_size : TensorSize | None
            Size of the tensors this layer will receive. May be omitted when the
            layer was constructed with an explicit input size.
        rng : Any
            Random generator used for initialization and stochastic layers.
        """
        ...

    def forward(self, tensor: ITensor) -> ITensor:
        """
        Execute the forward computation of the layer.

        Parameters
        ----------
        tensor : ITensor
            Input tensor with size equal to `input_size`.

        Returns
        -------
        ITensor
            Output tensor with size equal to `output_size`, carrying a graph
            node whose backward rule implements this layer's gradient.
        """
        ...

    def apply(self, gradients: Gradient, learning_rate: float) -> None:
        """
        Apply a parameter update.

        Parameters
        ----------
        gradients : Gradient
            Deltas to subtract from `weights` and `biases`.
        learning_rate : float
            The optimizer's learning rate, for layers that scale raw gradients
            themselves.
        """
        ...
