"""
He (Kaiming) weight initializers.

Implemented variants
--------------------
- ``he_normal``:
    ``N(0, std)`` with ``std = sqrt(2 / fan_in)``. Suited to ReLU-family
    activations.
- ``he_uniform``:
    ``U(-bound, +bound)`` with ``bound = sqrt(6 / fan_in)``.
"""

import math

import numpy as np

from ._base import WeightInitializer
from ...tensor._tensor import Tensor


@WeightInitializer.register_initializer("he_normal")
def he_normal(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    """
    Apply He normal initialization.

    Parameters
    ----------
    tensor:
        The tensor to initialize in-place.
    fan_in:
        Number of inputs feeding a single output unit.
    fan_out:
        Unused; accepted for a uniform initializer signature.
    rng:
        Random generator to draw from.

    Returns
    -------
    Tensor
        The initialized tensor (same object).
    """
    std = math.sqrt(2.0 / float(fan_in))
    tensor.value[...] = rng.standard_normal(tensor.value.shape) * std
    return tensor


@WeightInitializer.register_initializer("he_uniform")
def he_uniform(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    bound = math.sqrt(6.0 / float(fan_in))
    tensor.value[...] = rng.uniform(-bound, bound, size=tensor.value.shape)
    return tensor
