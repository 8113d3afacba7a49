"""
Scalar batch normalizer.

A `BatchNormalizer` owns one `(gamma, beta)` pair plus the moving statistics
used at inference time. `BatchNormalize` keeps one normalizer per depth slice.

Forward (training)
------------------
    mean = sum(x) / count
    var  = sum((x - mean)^2) / count
    std  = sqrt(var + epsilon)
    x̂    = (x - mean) / std
    y    = gamma * x̂ + beta

    moving_mean     = momentum * moving_mean     + (1 - momentum) * mean
    moving_variance = momentum * moving_variance + (1 - momentum) * var

Backward
--------
With `g` the upstream gradient and `n` the row count of the slice:

    dx̂ = g * gamma
    dx  = (1 / n) / std * (n * dx̂ - sum(dx̂) - x̂ * sum(dx̂ * x̂))

then a local SGD step updates `gamma -= lr * sum(g * x̂)` and
`beta -= lr * sum(g)`.

The forward statistics run over every element of the slice, but the backward
divides by the row count. For single-row slices this reproduces the reference
gradients; slices with more than one row do not receive the exact batch-norm
gradient.

Forward intermediates are returned to the caller as a `NormalizerCache`
instead of being stored on the normalizer, so concurrent samples never
overwrite each other's caches.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Tuple

import numpy as np

from ...domain._errors import NumericalInstabilityError

logger = logging.getLogger(__name__)


class FiniteValue:
    """
    Descriptor for float attributes that must stay finite.

    Assigning NaN or Inf raises `NumericalInstabilityError` and leaves the
    previous value in place.
    """

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.attr = "_" + name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return getattr(instance, self.attr)

    def __set__(self, instance: Any, value: float) -> None:
        value = float(value)
        if not math.isfinite(value):
            raise NumericalInstabilityError(
                f"{type(instance).__name__}.{self.name} (got {value})"
            )
        setattr(instance, self.attr, value)


@dataclass(frozen=True)
class NormalizerCache:
    """
    Forward intermediates needed by `BatchNormalizer.backward`.

    Attributes
    ----------
    normalized : np.ndarray
        `x̂`, shaped like the input slice.
    std : float
        Standard deviation used in the forward pass.
    gamma : float
        Scale in effect during the forward pass.
    rows : int
        Row count of the slice (`n` in the backward formula).
    """

    normalized: np.ndarray
    std: float
    gamma: float
    rows: int


class BatchNormalizer:
    """
    Per-channel batch normalizer with a local gamma/beta update rule.

    Parameters
    ----------
    gamma : float, optional
        Initial scale. Defaults to 1.
    beta : float, optional
        Initial shift. Defaults to 0.
    learning_rate : float
        Step size for the local gamma/beta update.
    momentum : float, optional
        Moving-statistics decay. Defaults to 0.9.
    epsilon : float, optional
        Variance smoothing term. Defaults to 5e-5.
    """

    gamma = FiniteValue()
    beta = FiniteValue()

    def __init__(
        self,
        gamma: float = 1.0,
        beta: float = 0.0,
        *,
        learning_rate: float,
        momentum: float = 0.9,
        epsilon: float = 5e-5,
    ) -> None:
        if not 0.0 <= momentum < 1.0:
            raise ValueError(f"momentum must be in [0, 1), got {momentum}")
        if epsilon <= 0.0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        self.gamma = gamma
        self.beta = beta
        self.learning_rate = float(learning_rate)
        self.momentum = float(momentum)
        self.epsilon = float(epsilon)
        self.moving_mean = 0.0
        self.moving_variance = 1.0
        self._lock = threading.Lock()

    def normalize(
        self, activations: np.ndarray, *, training: bool = True
    ) -> Tuple[np.ndarray, NormalizerCache]:
        """
        Normalize one slice.

        Parameters
        ----------
        activations : np.ndarray
            2D `(rows, columns)` slice.
        training : bool, optional
            Use batch statistics (and update the moving ones) when True; use
            the moving statistics otherwise.

        Returns
        -------
        tuple[np.ndarray, NormalizerCache]
            The scaled and shifted output plus the backward cache.
        """
        x = np.asarray(activations, dtype=np.float64)
        if x.ndim == 1:
            x = x[None, :]

        if training:
            mean = float(np.mean(x))
            variance = float(np.mean(np.square(x - mean)))
            with self._lock:
                m = self.momentum
                self.moving_mean = m * self.moving_mean + (1.0 - m) * mean
                self.moving_variance = m * self.moving_variance + (1.0 - m) * variance
        else:
            mean, variance = self.moving_mean, self.moving_variance

        std = math.sqrt(variance + self.epsilon)
        normalized = (x - mean) / std

        gamma, beta = self.gamma, self.beta
        out = gamma * normalized + beta
        return out, NormalizerCache(normalized, std, gamma, x.shape[0])

    def backward(
        self, gradient: np.ndarray, cache: NormalizerCache, *, update: bool = True
    ) -> np.ndarray:
        """
        Compute the input gradient and apply the local gamma/beta step.

        Parameters
        ----------
        gradient : np.ndarray
            Upstream gradient, shaped like the forward input.
        cache : NormalizerCache
            Cache returned by `normalize`.
        update : bool, optional
            Whether to update gamma and beta.

        Returns
        -------
        np.ndarray
            Gradient with respect to the forward input.

        Raises
        ------
        NumericalInstabilityError
            If the update would make gamma or beta non-finite.
        """
        g = np.asarray(gradient, dtype=np.float64).reshape(cache.normalized.shape)
        x_norm = cache.normalized
        n = float(cache.rows)

        dx_norm = g * cache.gamma
        dx = (1.0 / n) / cache.std * (
            n * dx_norm - np.sum(dx_norm) - x_norm * np.sum(dx_norm * x_norm)
        )

        if update:
            d_gamma = float(np.sum(g * x_norm))
            d_beta = float(np.sum(g))
            with self._lock:
                self.gamma = self.gamma - self.learning_rate * d_gamma
                self.beta = self.beta - self.learning_rate * d_beta
        return dx

    def statistics(self) -> Tuple[float, float, float, float]:
        """Return `(gamma, beta, moving_mean, moving_variance)`."""
        with self._lock:
            return self.gamma, self.beta, self.moving_mean, self.moving_variance

    def restore(
        self, gamma: float, beta: float, moving_mean: float, moving_variance: float
    ) -> None:
        with self._lock:
            self.gamma = gamma
            self.beta = beta
            self.moving_mean = float(moving_mean)
            self.moving_variance = float(moving_variance)
