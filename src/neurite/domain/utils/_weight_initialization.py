"""
Abstract interfaces for weight initialization.

This module defines the abstract base class for weight initializers used
throughout the framework.

The concrete implementation and registry logic live in the infrastructure
layer. This module exists in the domain layer to define the contract without
binding to any specific backend.

Fan computation
---------------
Tensors are stored `(depth, rows, columns)` and the same storage shape means
different things for different layers (a dense matrix, stacked convolution
filters). Fan-in and fan-out are therefore supplied by the layer that owns the
tensor rather than guessed from its shape.
"""

from typing import Any, Callable, Dict, TypeVar
from abc import ABC

from .._tensor import ITensor


T = TypeVar("T", bound=Callable[..., ITensor])


class _WeightInitializer(ABC):
    """
    Abstract base class for weight initializer dispatchers.

    Design notes
    ------------
    - Initializers are identified by string names.
    - Each initializer is a callable `(tensor, *, fan_in, fan_out, rng)` that
      mutates `tensor` in place and returns it.
    - `rng` is an explicit random generator so initialization is reproducible.
    """

    INITIALIZERS: Dict[str, Callable] = {}

    def __init__(self, initializer_name: str) -> None:
        """
        Construct a weight initializer dispatcher.

        Parameters
        ----------
        initializer_name:
            The string key identifying a registered initializer.
        """
        ...

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Register a weight initializer under a given name.

        Parameters
        ----------
        name:
            Name used to identify the initializer.
        overwrite:
            Whether to allow overwriting an existing registration.

        Returns
        -------
        Callable
            A decorator that registers the initializer function.
        """
        ...

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """
        Return the names of all registered initializers.
        """
        ...

    def __call__(
        self, tensor: ITensor, *, fan_in: int, fan_out: int, rng: Any
    ) -> ITensor:
        """
        Apply the initializer to a tensor.

        Parameters
        ----------
        tensor:
            The tensor to be initialized in place.
        fan_in, fan_out:
            Connection counts of a single output / input unit.
        rng:
            Random generator to draw from.

        Returns
        -------
        ITensor
            The initialized tensor.
        """
        ...
