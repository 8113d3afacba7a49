"""
Parameter-state payloads.

`extract_state_payload` turns the `state()` arrays of a layer or graph into
JSON-safe base64 payloads; `load_state_payload_` decodes them and loads them
back in place. No file format is imposed: callers decide how to persist the
resulting dictionary.
"""

from __future__ import annotations

from typing import Any, Dict

import numpy as np

from ..encoding._b64 import ndarray_to_payload, payload_to_ndarray


def extract_state_payload(model: Any) -> Dict[str, Dict[str, Any]]:
    """
    Extract parameter state into payloads keyed by state name.

    Parameters
    ----------
    model : Layer | Sequential
        Anything exposing `state() -> dict[str, np.ndarray]`.

    Returns
    -------
    dict[str, dict]
        `{name: {"b64", "dtype", "shape"}}`.
    """
    state = getattr(model, "state", None)
    if not callable(state):
        raise AttributeError("Model must implement state().")
    return {str(name): ndarray_to_payload(np.asarray(arr)) for name, arr in state().items()}


def load_state_payload_(model: Any, payloads: Dict[str, Dict[str, Any]]) -> None:
    """
    In-place load of parameter state from payloads.

    Raises
    ------
    KeyError
        If a state entry is missing from `payloads`.
    ShapeMismatchError
        If a decoded array does not match the model's current state.
    """
    load = getattr(model, "load_state", None)
    if not callable(load):
        raise AttributeError("Model must implement load_state().")
    arrays = {
        str(name): payload_to_ndarray(payload).astype(np.float32, copy=False)
        for name, payload in payloads.items()
    }
    load(arrays)
