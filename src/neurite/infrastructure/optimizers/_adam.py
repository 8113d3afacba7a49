"""
Adam optimizer implementation.

Moment state lives in a list arena indexed by layer position: entry `i` holds
the first/second moments of layer `i`'s weights and biases. The arena is
allocated lazily (zeros) on the first step and rebuilt whenever the managed
graph's structure changes (`Sequential.structure_version`).

Update rule
-----------
Let ``g`` be the averaged gradient of the step in progress and ``t`` the
number of completed steps:

    m = b1 * m + (1 - b1) * g
    v = b2 * v + (1 - b2) * g ** 2

    m_hat = m / (1 - b1 ** (t + 1))
    v_hat = v / (1 - b2 ** (t + 1))

    delta = lr * m_hat / (sqrt(v_hat) + eps)

The delta is handed to `Layer.apply`, which subtracts it. New moments are
staged during the step and only written to the arena once the base class has
checked that every layer's update is finite.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layer import Gradient
from .._layer import Layer
from ..tensor._tensor import Tensor
from ._base import Optimizer

logger = logging.getLogger(__name__)


@dataclass
class MomentState:
    """
    First (`m`, `mb`) and second (`v`, `vb`) moments of one layer's weights
    and biases, stored as float64 arrays in tensor storage order.
    """

    m: np.ndarray
    v: np.ndarray
    mb: np.ndarray
    vb: np.ndarray

    @classmethod
    def zeros_like(cls, weights: Tensor, biases: Tensor) -> "MomentState":
        w = weights.value.shape
        b = biases.value.shape
        return cls(
            np.zeros(w, dtype=np.float64),
            np.zeros(w, dtype=np.float64),
            np.zeros(b, dtype=np.float64),
            np.zeros(b, dtype=np.float64),
        )


class Adam(Optimizer):
    """
    Adam optimizer over a `Sequential` graph.

    Parameters
    ----------
    graph : Sequential
        Compiled graph to optimize.
    learning_rate : float, optional
        Step size. Defaults to 1e-3.
    beta1, beta2 : float, optional
        Decay rates of the first and second moments, each in (0, 1).
        Defaults to 0.9 and 0.999.
    epsilon : float, optional
        Denominator stabilizer. Must be positive. Defaults to 1e-8.
    **kwargs
        Forwarded to `Optimizer` (`l2_normalize`, `weight_clip`,
        `gradient_clip`, `workers`, `metrics_reporter`).

    Notes
    -----
    Layers that are frozen or declare `uses_optimizer = False` keep an arena
    slot but their moments are never touched.
    """

    def __init__(
        self,
        graph,
        *,
        learning_rate: float = 0.001,
        beta1: float = 0.9,
        beta2: float = 0.999,
        epsilon: float = 1e-8,
        **kwargs,
    ) -> None:
        super().__init__(graph, learning_rate=learning_rate, **kwargs)
        self.beta1 = float(beta1)
        self.beta2 = float(beta2)
        self.epsilon = float(epsilon)
        if not (0.0 < self.beta1 < 1.0) or not (0.0 < self.beta2 < 1.0):
            raise ValueError(f"betas must be in (0,1), got {(self.beta1, self.beta2)}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")

        self._moments: List[Optional[MomentState]] = []
        self._staged: Dict[int, MomentState] = {}
        self._version: Optional[int] = None

    @property
    def moments(self) -> Tuple[Optional[MomentState], ...]:
        """Read-only view of the moment arena."""
        return tuple(self._moments)

    def _prepare(self, layers: Sequence[Layer]) -> None:
        self._staged = {}
        version = self.graph.structure_version
        if self._version is None:
            self._moments = [None] * len(layers)
            self._version = version
            return
        if version != self._version or len(self._moments) != len(layers):
            warnings.warn(
                "Graph structure changed since the last Adam step; "
                "moment state and step counter were reset.",
                RuntimeWarning,
                stacklevel=3,
            )
            logger.warning("Rebuilding Adam moment state for %d layers", len(layers))
            self._moments = [None] * len(layers)
            self._version = version
            self.t = 0

    def _delta(self, index: int, layer: Layer, weights: Tensor, biases: Tensor) -> Gradient:
        state = self._moments[index]
        if state is None:
            state = MomentState.zeros_like(layer.weights, layer.biases)

        step = self.t + 1
        m, v, dw = self._update(state.m, state.v, weights.value, step, f"layer {index} weights")
        mb, vb, db = self._update(state.mb, state.vb, biases.value, step, f"layer {index} biases")
        self._staged[index] = MomentState(m, v, mb, vb)
        return Gradient(Tensor._wrap(dw), Tensor._wrap(db))

    def _commit(self) -> None:
        for index, state in self._staged.items():
            self._moments[index] = state
        self._staged = {}

    def _update(
        self, m: np.ndarray, v: np.ndarray, g: np.ndarray, step: int, where: str
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Return the new `(m, v, delta)`; the given moments are left as they are."""
        if m.shape != g.shape:
            raise ShapeMismatchError(
                f"Adam moment for {where}", expected=m.shape, actual=g.shape
            )
        g = g.astype(np.float64)
        m = self.beta1 * m + (1.0 - self.beta1) * g
        v = self.beta2 * v + (1.0 - self.beta2) * np.square(g)

        m_hat = m / (1.0 - self.beta1**step)
        v_hat = v / (1.0 - self.beta2**step)
        delta = (self.learning_rate * m_hat / (np.sqrt(v_hat) + self.epsilon)).astype(np.float32)
        return m, v, delta

    def reset(self) -> None:
        """Zero `t`, drop the moment arena and any pending gradients."""
        super().reset()
        self._moments = []
        self._staged = {}
        self._version = None
