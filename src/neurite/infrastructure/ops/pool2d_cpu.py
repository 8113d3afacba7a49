"""
CPU reference implementations for 2D pooling operations (NumPy backend).

Implemented pooling variants
-----------------------------
- MaxPool2D (forward + backward)
- AveragePool2D (forward + backward)

Design notes
------------
- Kernels operate on a single `(depth, rows, columns)` sample.
- MaxPool uses `-inf` padding so padded values never win. The forward pass
  returns the flat arg-max index of every output position inside the padded
  slice; the backward pass scatters to exactly those positions.
- AvgPool uses zero padding and averages over the full kernel area.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .conv2d_cpu import Pad4, _pad, _pair


def maxpool2d_forward_cpu(
    x: np.ndarray,
    kernel: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    pad: Pad4,
    out_hw: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute the forward pass of 2D max pooling.

    Parameters
    ----------
    x : np.ndarray
        Input `(D, H, W)`.
    kernel : int or tuple[int, int]
        Pooling window `(k_h, k_w)`.
    stride : int or tuple[int, int]
        Window stride.
    pad : tuple[int, int, int, int]
        `(top, bottom, left, right)` padding filled with `-inf`.
    out_hw : tuple[int, int]
        Output `(H_out, W_out)`.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        `(y, argmax)` where `y` is `(D, H_out, W_out)` and `argmax` holds the
        flat index of each winner within its padded depth slice.
    """
    k_h, k_w = _pair(kernel)
    s_h, s_w = _pair(stride)
    D = x.shape[0]
    H_out, W_out = out_hw

    x_pad = _pad(x, pad, value=-np.inf)
    W_pad = x_pad.shape[2]

    y = np.empty((D, H_out, W_out), dtype=x.dtype)
    argmax = np.empty((D, H_out, W_out), dtype=np.int64)

    for i in range(H_out):
        h0 = i * s_h
        for j in range(W_out):
            w0 = j * s_w
            window = x_pad[:, h0 : h0 + k_h, w0 : w0 + k_w].reshape(D, -1)
            idx = np.argmax(window, axis=1)
            y[:, i, j] = window[np.arange(D), idx]
            argmax[:, i, j] = (h0 + idx // k_w) * W_pad + (w0 + idx % k_w)
    return y, argmax


def maxpool2d_backward_cpu(
    grad_out: np.ndarray,
    argmax: np.ndarray,
    x_shape: Tuple[int, int, int],
    pad: Pad4,
) -> np.ndarray:
    """
    Scatter output gradients to the recorded arg-max positions.

    Overlapping windows that select the same element accumulate.
    """
    D, H, W = x_shape
    top, bottom, left, right = pad
    H_pad, W_pad = H + top + bottom, W + left + right

    grad_pad = np.zeros((D, H_pad * W_pad), dtype=grad_out.dtype)
    for d in range(D):
        np.add.at(grad_pad[d], argmax[d].reshape(-1), grad_out[d].reshape(-1))
    grad_pad = grad_pad.reshape(D, H_pad, W_pad)
    return np.ascontiguousarray(grad_pad[:, top : top + H, left : left + W])


def avgpool2d_forward_cpu(
    x: np.ndarray,
    kernel: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    pad: Pad4,
    out_hw: Tuple[int, int],
) -> np.ndarray:
    """
    Compute the forward pass of 2D average pooling.

    Returns
    -------
    np.ndarray
        Output `(D, H_out, W_out)`; each value is the window sum divided by
        `k_h * k_w` (padding counts as zeros).
    """
    k_h, k_w = _pair(kernel)
    s_h, s_w = _pair(stride)
    D = x.shape[0]
    H_out, W_out = out_hw

    x_pad = _pad(x, pad)
    area = float(k_h * k_w)
    y = np.empty((D, H_out, W_out), dtype=x.dtype)
    for i in range(H_out):
        h0 = i * s_h
        for j in range(W_out):
            w0 = j * s_w
            y[:, i, j] = x_pad[:, h0 : h0 + k_h, w0 : w0 + k_w].sum(axis=(1, 2)) / area
    return y


def avgpool2d_backward_cpu(
    grad_out: np.ndarray,
    x_shape: Tuple[int, int, int],
    kernel: int | Tuple[int, int],
    stride: int | Tuple[int, int],
    pad: Pad4,
) -> np.ndarray:
    """
    Distribute each output gradient evenly over its pooling window.
    """
    k_h, k_w = _pair(kernel)
    s_h, s_w = _pair(stride)
    D, H, W = x_shape
    top, bottom, left, right = pad
    _, H_out, W_out = grad_out.shape

    grad_pad = np.zeros((D, H + top + bottom, W + left + right), dtype=grad_out.dtype)
    area = float(k_h * k_w)
    for i in range(H_out):
        h0 = i * s_h
        for j in range(W_out):
            w0 = j * s_w
            grad_pad[:, h0 : h0 + k_h, w0 : w0 + k_w] += (
                grad_out[:, i, j][:, None, None] / area
            )
    return np.ascontiguousarray(grad_pad[:, top : top + H, left : left + W])
