"""
NumPy CPU device.

`CPU` is the reference implementation of the `IDevice` protocol. It evaluates
activations with vectorized numpy expressions and convolutions with the
reference kernels in `neurite.infrastructure.ops`. All methods are pure and
deterministic; they return leaf tensors and never attach graph nodes, since
differentiation is the calling layer's responsibility.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Tuple

import numpy as np

from ...domain.device._device_protocol import ActivationKind, IDevice, Padding
from ..ops.conv2d_cpu import (
    conv2d_forward_cpu,
    conv2d_transpose_forward_cpu,
    same_padding,
    transpose_crop,
    valid_output,
)
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)

SELU_ALPHA = 1.6732632423543772
SELU_SCALE = 1.0507009873554805


def _sigmoid(x: np.ndarray) -> np.ndarray:
    # Split by sign so exp never overflows.
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ex = np.exp(x[~pos])
    out[~pos] = ex / (1.0 + ex)
    return out


def _relu(x, d, limit):
    if d:
        return (x > 0).astype(x.dtype)
    return np.maximum(x, 0)


def _leaky_relu(x, d, limit):
    if d:
        return np.where(x > 0, 1.0, limit).astype(x.dtype)
    return np.where(x > 0, x, limit * x).astype(x.dtype)


def _sigmoid_fn(x, d, limit):
    s = _sigmoid(x)
    return s * (1.0 - s) if d else s


def _tanh(x, d, limit):
    t = np.tanh(x)
    return 1.0 - t * t if d else t


def _swish(x, d, limit):
    s = _sigmoid(x)
    if d:
        return s + x * s * (1.0 - s)
    return x * s


def _selu(x, d, limit):
    neg = SELU_SCALE * SELU_ALPHA * np.exp(np.minimum(x, 0))
    if d:
        return np.where(x > 0, SELU_SCALE, neg).astype(x.dtype)
    return np.where(x > 0, SELU_SCALE * x, neg - SELU_SCALE * SELU_ALPHA).astype(
        x.dtype
    )


def _identity(x, d, limit):
    return np.ones_like(x) if d else x.copy()


_ACTIVATIONS: Dict[ActivationKind, Callable[[np.ndarray, bool, float], np.ndarray]] = {
    ActivationKind.RELU: _relu,
    ActivationKind.LEAKY_RELU: _leaky_relu,
    ActivationKind.SIGMOID: _sigmoid_fn,
    ActivationKind.TANH: _tanh,
    ActivationKind.SWISH: _swish,
    ActivationKind.SELU: _selu,
    ActivationKind.NONE: _identity,
}


def _split_filters(filters: Tensor, filter_count: int) -> np.ndarray:
    """
    Reshape stacked `(F*D, k_h, k_w)` filter storage into `(F, D, k_h, k_w)`.
    """
    value = filters.value
    if filter_count <= 0 or value.shape[0] % filter_count != 0:
        raise ValueError(
            f"Filter storage depth {value.shape[0]} is not divisible by "
            f"filter_count={filter_count}"
        )
    depth = value.shape[0] // filter_count
    return value.reshape(filter_count, depth, value.shape[1], value.shape[2])


class CPU(IDevice):
    """
    Reference numpy device.

    Notes
    -----
    - Instances are stateless and may be shared across layers and threads.
    - Equality is by type, so layers compare equal after a config round-trip.
    """

    name = "cpu"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CPU)

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return "CPU()"

    def activate(
        self,
        tensor: Tensor,
        kind: ActivationKind,
        *,
        derivative: bool = False,
        limit: float = 0.01,
    ) -> Tensor:
        fn = _ACTIVATIONS.get(kind)
        if fn is None:
            raise ValueError(f"Unsupported activation kind: {kind!r}")
        x = tensor.value
        with np.errstate(over="ignore"):
            out = fn(x, derivative, float(limit))
        return Tensor._wrap(out.astype(np.float32, copy=False))

    def conv2d(
        self,
        tensor: Tensor,
        filters: Tensor,
        *,
        filter_count: int,
        strides: Tuple[int, int],
        padding: Padding,
    ) -> Tensor:
        w = _split_filters(filters, filter_count)
        _, rows, columns = tensor.value.shape
        kernel = (w.shape[2], w.shape[3])
        if Padding(padding) is Padding.SAME:
            out_hw, pad = same_padding((rows, columns), kernel, strides)
        else:
            out_hw, pad = valid_output((rows, columns), kernel, strides), (0, 0, 0, 0)
        return Tensor._wrap(conv2d_forward_cpu(tensor.value, w, strides, pad, out_hw))

    def transconv2d(
        self,
        tensor: Tensor,
        filters: Tensor,
        *,
        filter_count: int,
        strides: Tuple[int, int],
        padding: Padding,
    ) -> Tensor:
        w = _split_filters(filters, filter_count)
        _, rows, columns = tensor.value.shape
        out_hw, crop = transpose_crop(
            (rows, columns),
            (w.shape[2], w.shape[3]),
            strides,
            Padding(padding) is Padding.SAME,
        )
        return Tensor._wrap(
            conv2d_transpose_forward_cpu(tensor.value, w, strides, crop, out_hw)
        )
