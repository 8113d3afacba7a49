"""
Domain-level optimizer contracts for neurite.

This module defines the `IOptimizer` protocol, which specifies the minimal
interface required for optimizer implementations (e.g. SGD, Adam).

Notes
-----
- Domain contracts are backend-agnostic and must not depend on numpy or
  infrastructure implementations.
- Optimizers consume gradients that were accumulated over a batch. How the
  gradients are produced (the tensor graph) is outside the scope of this
  protocol.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IOptimizer(Protocol):
    """
    Optimizer interface contract.

    Required methods
    ----------------
    - `step()` consumes the accumulated gradients and applies one update to
      every layer of the managed graph.
    - `reset()` drops all optimizer state (step counter, moments).
    - `zero_gradients()` discards pending accumulated gradients.
    """

    learning_rate: float

    def step(self) -> None:
        """
        Apply one optimization step.
        """
        ...

    def reset(self) -> None:
        """
        Clear all per-parameter optimizer state.
        """
        ...

    def zero_gradients(self) -> None:
        """
        Discard any pending accumulated gradients.
        """
        ...
