"""
Device backend contract.

Layers never run kernels directly. Elementwise activations and convolutions are
delegated to an injected device object that satisfies `IDevice`. The framework
ships a numpy `CPU` implementation; accelerator backends are external
collaborators that only need to honour this protocol.

A device is expected to be deterministic: identical inputs produce identical
outputs. Any asynchronous dispatch must be awaited inside the call, so every
method is an opaque blocking operation from the caller's point of view.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, Tuple, runtime_checkable

from .._tensor import ITensor


class ActivationKind(Enum):
    """
    Elementwise activation functions a device must implement.

    Softmax is not listed here: it is a whole-tensor reduction handled by the
    `Softmax` layer itself.
    """

    RELU = "relu"
    LEAKY_RELU = "leaky_relu"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    SWISH = "swish"
    SELU = "selu"
    NONE = "none"


class Padding(Enum):
    """
    Spatial padding mode for convolution and pooling layers.

    - VALID: no padding; output shrinks by `kernel - 1`.
    - SAME: pad so that `output = ceil(input / stride)`.
    """

    VALID = "valid"
    SAME = "same"


@runtime_checkable
class IDevice(Protocol):
    """
    Kernel backend used by layers.
    """

    name: str

    def activate(
        self,
        tensor: ITensor,
        kind: ActivationKind,
        *,
        derivative: bool = False,
        limit: float = 0.01,
    ) -> ITensor:
        """
        Apply an activation (or its derivative) elementwise.

        Parameters
        ----------
        tensor : ITensor
            Pre-activation input.
        kind : ActivationKind
            Which activation to evaluate.
        derivative : bool, optional
            If True, return `f'(x)` instead of `f(x)`.
        limit : float, optional
            Negative slope for leaky activations.

        Returns
        -------
        ITensor
            A leaf tensor of the same size as `tensor`.
        """
        ...

    def conv2d(
        self,
        tensor: ITensor,
        filters: ITensor,
        *,
        filter_count: int,
        strides: Tuple[int, int],
        padding: Padding,
    ) -> ITensor:
        """
        Cross-correlate `tensor` with stacked `filters`.

        `filters` stores `filter_count` filters stacked along depth, each
        spanning the full input depth.
        """
        ...

    def transconv2d(
        self,
        tensor: ITensor,
        filters: ITensor,
        *,
        filter_count: int,
        strides: Tuple[int, int],
        padding: Padding,
    ) -> ITensor:
        """
        Transposed convolution (scatter-add) of `tensor` with stacked `filters`.
        """
        ...
