"""
Xavier/Glorot weight initializers.

Implemented variants
--------------------
- ``xavier_normal``:
    ``N(0, std)`` with ``std = sqrt(2 / (fan_in + fan_out))``.
- ``xavier_uniform``:
    ``U(-bound, +bound)`` with ``bound = sqrt(6 / (fan_in + fan_out))``.
"""

import math

import numpy as np

from ._base import WeightInitializer
from ...tensor._tensor import Tensor


@WeightInitializer.register_initializer("xavier_normal")
def xavier_normal(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    """
    Apply Xavier (Glorot) normal initialization.

    Parameters
    ----------
    tensor:
        The tensor to initialize in-place.
    fan_in, fan_out:
        Connection counts supplied by the owning layer.
    rng:
        Random generator to draw from.

    Returns
    -------
    Tensor
        The initialized tensor (same object).
    """
    std = math.sqrt(2.0 / float(fan_in + fan_out))
    tensor.value[...] = rng.standard_normal(tensor.value.shape) * std
    return tensor


@WeightInitializer.register_initializer("xavier_uniform")
def xavier_uniform(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    """
    Apply Xavier (Glorot) uniform initialization.
    """
    bound = math.sqrt(6.0 / float(fan_in + fan_out))
    tensor.value[...] = rng.uniform(-bound, bound, size=tensor.value.shape)
    return tensor
