"""
Thread-safe gradient accumulation.

Worker threads call `insert()` with one sample's `TensorGradient`; the
optimizer calls `accumulate()` once all workers have joined to obtain the
per-layer mean gradients.

Design notes
------------
- Running sums are kept in float64 and keyed by layer index, so the mean of N
  identical contributions equals that contribution.
- `insert()` validates the whole sample before taking the lock and adds it
  under the lock, so a sample is either fully counted or not at all.
- `accumulate()` must not run concurrently with `insert()`; the caller joins
  its workers first.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import ConfigurationError, NumericalInstabilityError
from ...domain.types._tensor_size import TensorSize
from ..tensor._tensor import Tensor, TensorGradient

logger = logging.getLogger(__name__)

ShapeProvider = Callable[[], Sequence[Tuple[TensorSize, TensorSize]]]


@dataclass
class GradientAccumulator:
    """
    Running per-layer sums of (weight, bias) gradients.

    Attributes
    ----------
    shapes : Callable[[], Sequence[tuple[TensorSize, TensorSize]]] | None
        Provides `(weights, biases)` sizes per layer. Used to return zero
        gradients when `accumulate()` runs with no contributions.
    """

    shapes: Optional[ShapeProvider] = None
    _weights: Dict[int, np.ndarray] = field(default_factory=dict, repr=False)
    _biases: Dict[int, np.ndarray] = field(default_factory=dict, repr=False)
    _layers: Optional[int] = field(default=None, repr=False)
    _count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def count(self) -> int:
        """Number of samples inserted since the last `accumulate()`/`clear()`."""
        with self._lock:
            return self._count

    def insert(self, gradient: TensorGradient) -> None:
        """
        Add one sample's per-layer gradients.

        Raises
        ------
        NumericalInstabilityError
            If any gradient holds NaN or Inf. Nothing is summed.
        ConfigurationError
            If the sample's layer count or gradient shapes differ from the
            samples already inserted.
        """
        weights = [self._as_array(t) for t in gradient.weights]
        biases = [self._as_array(t) for t in gradient.biases]
        if len(weights) != len(biases):
            raise ConfigurationError(
                f"Gradient has {len(weights)} weight entries but {len(biases)} bias entries."
            )
        for i, (w, b) in enumerate(zip(weights, biases)):
            if not (np.all(np.isfinite(w)) and np.all(np.isfinite(b))):
                raise NumericalInstabilityError(f"sample gradients of layer {i}")

        with self._lock:
            if self._layers is None:
                self._layers = len(weights)
            elif self._layers != len(weights):
                raise ConfigurationError(
                    f"Gradient covers {len(weights)} layers; "
                    f"earlier samples covered {self._layers}."
                )
            for i, (w, b) in enumerate(zip(weights, biases)):
                self._check_shape(self._weights, i, w)
                self._check_shape(self._biases, i, b)
            for i, (w, b) in enumerate(zip(weights, biases)):
                self._add(self._weights, i, w)
                self._add(self._biases, i, b)
            self._count += 1

    def accumulate(self) -> TensorGradient:
        """
        Return the per-layer mean gradients and clear the running sums.

        Returns
        -------
        TensorGradient
            `weights`/`biases` hold one mean gradient per layer; `input` is
            empty. With no contributions the result holds zeros sized by the
            `shapes` provider (or is empty without one).
        """
        with self._lock:
            count = self._count
            layers = self._layers or 0
            sums_w, sums_b = self._weights, self._biases
            self._reset_locked()

        if count == 0:
            return self._zeros()

        weights: List[Tensor] = []
        biases: List[Tensor] = []
        for i in range(layers):
            weights.append(Tensor._wrap((sums_w[i] / count).astype(np.float32)))
            biases.append(Tensor._wrap((sums_b[i] / count).astype(np.float32)))
        logger.debug("Accumulated %d samples over %d layers", count, layers)
        return TensorGradient(input=[], weights=weights, biases=biases)

    def clear(self) -> None:
        """Drop all pending contributions."""
        with self._lock:
            self._reset_locked()

    # ------------------------------------------------------------------
    def _reset_locked(self) -> None:
        self._weights = {}
        self._biases = {}
        self._layers = None
        self._count = 0

    def _zeros(self) -> TensorGradient:
        if self.shapes is None:
            return TensorGradient()
        weights, biases = [], []
        for w_size, b_size in self.shapes():
            weights.append(Tensor.zeros(w_size))
            biases.append(Tensor.zeros(b_size))
        return TensorGradient(input=[], weights=weights, biases=biases)

    @staticmethod
    def _as_array(t: Optional[Tensor]) -> np.ndarray:
        if t is None:
            return np.zeros((0, 0, 0), dtype=np.float64)
        return np.asarray(t.value, dtype=np.float64)

    @staticmethod
    def _check_shape(sums: Dict[int, np.ndarray], i: int, arr: np.ndarray) -> None:
        current = sums.get(i)
        if current is not None and current.shape != arr.shape:
            raise ConfigurationError(
                f"Layer {i} gradient shape {arr.shape} differs from earlier "
                f"samples {current.shape}."
            )

    @staticmethod
    def _add(sums: Dict[int, np.ndarray], i: int, arr: np.ndarray) -> None:
        current = sums.get(i)
        if current is None:
            sums[i] = arr.copy()
        else:
            current += arr
