"""
Error taxonomy for neurite.

This module defines the exceptions raised by the tensor graph, the layers and
the optimizers. The hierarchy mirrors the three failure classes the framework
distinguishes:

- **Configuration errors** (shape mismatches, uncompiled graphs, stale
  optimizer state). These are fatal: training is not expected to recover.
- **Data errors** (label counts or widths that do not match the network).
  These are detected before any state is mutated.
- **Numerical errors** (NaN/Inf in gradients or parameters). These are flagged
  instead of propagated, since a single NaN corrupts every downstream moment
  estimate.

Each concrete error also derives from the closest builtin exception so callers
can catch `ValueError` / `RuntimeError` / `FloatingPointError` generically.
"""

from __future__ import annotations

from typing import Optional, Sequence


class NeuriteError(Exception):
    """
    Base class for every error raised by neurite.
    """


class ConfigurationError(NeuriteError, RuntimeError):
    """
    Raised when the network or optimizer is structurally misconfigured.
    """


class ShapeMismatchError(ConfigurationError, ValueError):
    """
    Raised when a tensor shape does not match the shape a component expects.

    Attributes
    ----------
    expected : Sequence[int] | None
        The shape the component was compiled for.
    actual : Sequence[int] | None
        The shape that was received.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: Optional[Sequence[int]] = None,
        actual: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        message : str
            Description of where the mismatch happened.
        expected : Sequence[int] | None, optional
            Expected shape, appended to the message when provided.
        actual : Sequence[int] | None, optional
            Actual shape, appended to the message when provided.
        """
        if expected is not None or actual is not None:
            message = f"{message} (expected {list(expected or [])}, got {list(actual or [])})"
        super().__init__(message)
        self.expected = None if expected is None else list(expected)
        self.actual = None if actual is None else list(actual)


class NotCompiledError(ConfigurationError):
    """
    Raised when a layer, graph or optimizer is used before `compile()`.
    """

    def __init__(self, component: str) -> None:
        super().__init__(
            f"{component} has not been compiled. Call compile() before running it."
        )
        self.component = component


class DataError(NeuriteError, ValueError):
    """
    Raised when training data does not fit the network it is fed to.

    Data errors are always raised before any accumulator or optimizer state is
    touched, so no partial update is ever applied.
    """


class NumericalInstabilityError(NeuriteError, FloatingPointError):
    """
    Raised when NaN or Inf values are detected in gradients or parameters.

    Attributes
    ----------
    where : str
        Human-readable location of the non-finite values (e.g. "layer 2 weights").
    """

    def __init__(self, where: str) -> None:
        super().__init__(f"Non-finite values detected in {where}.")
        self.where = where
