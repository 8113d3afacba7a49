"""
Constant weight initializers.

Provided initializers
---------------------
- ``zeros``: every element set to zero.
- ``ones``: every element set to one.

These are typically used for biases, normalization scales, or deterministic
test setups.
"""

import numpy as np

from ._base import WeightInitializer
from ...tensor._tensor import Tensor


@WeightInitializer.register_initializer("zeros")
def zeros(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    tensor.value[...] = 0.0
    return tensor


@WeightInitializer.register_initializer("ones")
def ones(
    tensor: Tensor, *, fan_in: int, fan_out: int, rng: np.random.Generator
) -> Tensor:
    tensor.value[...] = 1.0
    return tensor
