"""
Base64 array payloads.

Parameter arrays are exported as JSON-safe dictionaries holding the raw bytes
in base64 together with the dtype and shape needed to rebuild them.
"""

from __future__ import annotations

import base64
from typing import Any, Dict

import numpy as np


def ndarray_to_payload(arr: np.ndarray) -> Dict[str, Any]:
    """
    Serialize an array into `{"b64", "dtype", "shape"}`.

    Bytes are written in C order with the dtype's explicit byte order
    (e.g. ``"<f4"``), so payloads are portable between machines.
    """
    a = np.ascontiguousarray(arr)
    return {
        "b64": base64.b64encode(a.tobytes(order="C")).decode("ascii"),
        "dtype": a.dtype.str,
        "shape": list(a.shape),
    }


def payload_to_ndarray(payload: Dict[str, Any]) -> np.ndarray:
    """
    Decode a payload produced by `ndarray_to_payload` into an owning array.

    Raises
    ------
    ValueError
        If the byte count does not match the declared dtype and shape.
    """
    raw = base64.b64decode(str(payload["b64"]).encode("ascii"))
    dtype = np.dtype(str(payload["dtype"]))
    shape = tuple(int(x) for x in payload["shape"])

    expected = int(np.prod(shape, dtype=np.int64)) * dtype.itemsize
    if len(raw) != expected:
        raise ValueError(
            f"Payload holds {len(raw)} bytes, expected {expected} for "
            f"dtype={dtype.str} shape={list(shape)}"
        )
    return np.frombuffer(raw, dtype=dtype).reshape(shape).copy()
