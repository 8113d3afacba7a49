"""
CPU-based naive Conv2D kernels for neurite.

This module provides reference implementations of 2D convolution (forward and
backward) and transposed convolution using NumPy on the CPU. The kernels are
written as explicit loops over output positions, with the per-window work
vectorized by numpy, to keep them easy to audit against the backward formulas.

Tensor layout
-------------
Every kernel works on a single sample:

- activations: `(depth, rows, columns)`
- convolution filters: `(filter_count, depth, k_h, k_w)`

Padding
-------
Padding is described by `(top, bottom, left, right)`. "same" padding may be
asymmetric; the extra row/column goes at the bottom/right.
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np

Pad4 = Tuple[int, int, int, int]


def _pair(v: int | Tuple[int, int]) -> Tuple[int, int]:
    """
    Normalize an integer or pair into a `(rows, columns)` 2-tuple.
    """
    return tuple(v) if isinstance(v, (tuple, list)) else (v, v)


def same_padding(
    size: Tuple[int, int], kernel: Tuple[int, int], stride: Tuple[int, int]
) -> Tuple[Tuple[int, int], Pad4]:
    """
    Compute the output size and padding of a "same" convolution.

    Parameters
    ----------
    size : tuple[int, int]
        Input `(rows, columns)`.
    kernel : tuple[int, int]
        Kernel `(k_h, k_w)`.
    stride : tuple[int, int]
        Stride `(s_h, s_w)`.

    Returns
    -------
    tuple
        `((out_rows, out_columns), (top, bottom, left, right))` where
        `out = ceil(in / stride)` along each axis.
    """
    outs = []
    pads = []
    for n, k, s in zip(size, kernel, stride):
        out = int(math.ceil(n / s))
        total = max((out - 1) * s + k - n, 0)
        outs.append(out)
        pads.append((total // 2, total - total // 2))
    return (outs[0], outs[1]), (pads[0][0], pads[0][1], pads[1][0], pads[1][1])


def valid_output(
    size: Tuple[int, int], kernel: Tuple[int, int], stride: Tuple[int, int]
) -> Tuple[int, int]:
    """
    Output `(rows, columns)` of an unpadded convolution.
    """
    return tuple((n - k) // s + 1 for n, k, s in zip(size, kernel, stride))


def _pad(x: np.ndarray, pad: Pad4, value: float = 0.0) -> np.ndarray:
    top, bottom, left, right = pad
    if not any(pad):
        return x
    return np.pad(
        x,
        pad_width=((0, 0), (top, bottom), (left, right)),
        mode="constant",
        constant_values=value,
    )


def conv2d_forward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    stride: int | Tuple[int, int],
    pad: Pad4,
    out_hw: Tuple[int, int],
) -> np.ndarray:
    """
    Compute the forward pass of a 2D cross-correlation.

    Parameters
    ----------
    x : np.ndarray
        Input of shape `(D, H, W)`.
    w : np.ndarray
        Filters of shape `(F, D, K_h, K_w)`.
    stride : int or tuple[int, int]
        Convolution stride.
    pad : tuple[int, int, int, int]
        Zero padding `(top, bottom, left, right)`.
    out_hw : tuple[int, int]
        Output `(H_out, W_out)`.

    Returns
    -------
    np.ndarray
        Output of shape `(F, H_out, W_out)`. Bias is not added.

    Raises
    ------
    ValueError
        If the input depth does not match the filter depth.
    """
    s_h, s_w = _pair(stride)
    D, _, _ = x.shape
    F, D2, K_h, K_w = w.shape
    if D != D2:
        raise ValueError(f"depth mismatch: x has {D}, filters have {D2}")

    H_out, W_out = out_hw
    x_pad = _pad(x, pad)
    y = np.zeros((F, H_out, W_out), dtype=x.dtype)

    for i in range(H_out):
        h0 = i * s_h
        for j in range(W_out):
            w0 = j * s_w
            patch = x_pad[:, h0 : h0 + K_h, w0 : w0 + K_w]
            y[:, i, j] = np.tensordot(w, patch, axes=([1, 2, 3], [0, 1, 2]))
    return y


def conv2d_backward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    grad_out: np.ndarray,
    stride: int | Tuple[int, int],
    pad: Pad4,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute input and filter gradients of a 2D cross-correlation.

    Parameters
    ----------
    x : np.ndarray
        Original input `(D, H, W)`.
    w : np.ndarray
        Filters `(F, D, K_h, K_w)`.
    grad_out : np.ndarray
        Gradient with respect to the output `(F, H_out, W_out)`.
    stride, pad
        As used in the forward pass.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        `(grad_x, grad_w)` shaped like `x` and `w`.

    Notes
    -----
    The gradient is scattered into a padded buffer and the padding is cropped
    before returning.
    """
    s_h, s_w = _pair(stride)
    _, H, W = x.shape
    _, _, K_h, K_w = w.shape
    _, H_out, W_out = grad_out.shape
    top, _, left, _ = pad

    x_pad = _pad(x, pad)
    grad_x_pad = np.zeros_like(x_pad)
    grad_w = np.zeros_like(w)

    for i in range(H_out):
        h0 = i * s_h
        for j in range(W_out):
            w0 = j * s_w
            go = grad_out[:, i, j]
            window = x_pad[:, h0 : h0 + K_h, w0 : w0 + K_w]
            grad_w += go[:, None, None, None] * window[None, :, :, :]
            grad_x_pad[:, h0 : h0 + K_h, w0 : w0 + K_w] += np.tensordot(
                go, w, axes=([0], [0])
            )

    grad_x = grad_x_pad[:, top : top + H, left : left + W]
    return np.ascontiguousarray(grad_x), grad_w


def transpose_crop(
    size: Tuple[int, int],
    kernel: Tuple[int, int],
    stride: Tuple[int, int],
    same: bool,
) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """
    Output size and crop offset of a transposed convolution.

    Returns
    -------
    tuple
        `((out_rows, out_columns), (crop_top, crop_left))`. "same" keeps
        `in * stride` rows/columns, "valid" keeps the full `(in-1)*stride + k`.
    """
    outs = []
    crops = []
    for n, k, s in zip(size, kernel, stride):
        full = (n - 1) * s + k
        if same:
            out = n * s
            crops.append(max(full - out, 0) // 2)
        else:
            out = full
            crops.append(0)
        outs.append(out)
    return (outs[0], outs[1]), (crops[0], crops[1])


def _full_shape(
    F: int,
    size: Tuple[int, int],
    kernel: Tuple[int, int],
    stride: Tuple[int, int],
    crop: Tuple[int, int],
    out_hw: Tuple[int, int],
) -> Tuple[int, int, int]:
    # Grow the scatter buffer when the kept window exceeds it (kernel < stride).
    dims = [
        max((n - 1) * s + k, c + o)
        for n, k, s, c, o in zip(size, kernel, stride, crop, out_hw)
    ]
    return (F, dims[0], dims[1])


def conv2d_transpose_forward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    stride: int | Tuple[int, int],
    crop: Tuple[int, int],
    out_hw: Tuple[int, int],
) -> np.ndarray:
    """
    Compute the forward pass of a 2D transposed convolution.

    Each input pixel scatters `x[d, hi, wi] * w[f, d]` into a full-size output
    of `((H-1)*s_h + K_h, (W-1)*s_w + K_w)`, which is then cropped.

    Parameters
    ----------
    x : np.ndarray
        Input `(D, H, W)`.
    w : np.ndarray
        Filters `(F, D, K_h, K_w)`.
    stride : int or tuple[int, int]
        Upsampling stride.
    crop : tuple[int, int]
        Top/left offset of the kept window inside the full output.
    out_hw : tuple[int, int]
        Kept output `(H_out, W_out)`.

    Returns
    -------
    np.ndarray
        Output of shape `(F, H_out, W_out)`.
    """
    s_h, s_w = _pair(stride)
    D, H, W = x.shape
    F, D2, K_h, K_w = w.shape
    if D != D2:
        raise ValueError(f"depth mismatch: x has {D}, filters have {D2}")

    c_h, c_w = crop
    H_out, W_out = out_hw
    full = np.zeros(
        _full_shape(F, (H, W), (K_h, K_w), (s_h, s_w), crop, out_hw), dtype=x.dtype
    )
    for hi in range(H):
        h0 = hi * s_h
        for wi in range(W):
            w0 = wi * s_w
            full[:, h0 : h0 + K_h, w0 : w0 + K_w] += np.tensordot(
                w, x[:, hi, wi], axes=([1], [0])
            )

    return np.ascontiguousarray(full[:, c_h : c_h + H_out, c_w : c_w + W_out])


def conv2d_transpose_backward_cpu(
    x: np.ndarray,
    w: np.ndarray,
    grad_out: np.ndarray,
    stride: int | Tuple[int, int],
    crop: Tuple[int, int],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute input and filter gradients of a 2D transposed convolution.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        `(grad_x, grad_w)` shaped like `x` and `w`. Contributions that landed
        in the cropped border receive no gradient.
    """
    s_h, s_w = _pair(stride)
    _, H, W = x.shape
    F, _, K_h, K_w = w.shape
    _, H_out, W_out = grad_out.shape
    c_h, c_w = crop

    full = np.zeros(
        _full_shape(F, (H, W), (K_h, K_w), (s_h, s_w), crop, (H_out, W_out)),
        dtype=grad_out.dtype,
    )
    full[:, c_h : c_h + H_out, c_w : c_w + W_out] = grad_out

    grad_x = np.zeros_like(x)
    grad_w = np.zeros_like(w)
    for hi in range(H):
        h0 = hi * s_h
        for wi in range(W):
            w0 = wi * s_w
            window = full[:, h0 : h0 + K_h, w0 : w0 + K_w]
            grad_x[:, hi, wi] = np.tensordot(w, window, axes=([0, 2, 3], [0, 1, 2]))
            grad_w += window[:, None, :, :] * x[None, :, hi, wi, None, None]
    return grad_x, grad_w
