"""
Weight initializer registry.

Layers initialize their parameters at compile time by name: the layer holds
the registry key (e.g. ``"xavier_normal"``), builds a zero tensor of the right
size and hands it to `WeightInitializer(key)` together with its fan counts
and the graph's random generator.

Registering a strategy:

    @WeightInitializer.register_initializer("he_normal")
    def he_normal(tensor, *, fan_in, fan_out, rng):
        ...

Applying it:

    WeightInitializer("he_normal")(weights, fan_in=64, fan_out=32, rng=rng)
"""

from __future__ import annotations

from typing import Callable, ClassVar, Dict, TypeVar

import numpy as np

from ....domain.utils._weight_initialization import _WeightInitializer
from ...tensor._tensor import Tensor

T = TypeVar("T", bound=Callable[..., Tensor])


class WeightInitializer(_WeightInitializer):
    """
    Dispatcher over the registered initialization strategies.

    Parameters
    ----------
    initializer_name : str
        Registry key of the strategy.

    Raises
    ------
    ValueError
        If no strategy is registered under `initializer_name`.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., Tensor]]] = {}

    def __init__(self, initializer_name: str) -> None:
        strategy = self.INITIALIZERS.get(initializer_name)
        if strategy is None:
            raise ValueError(
                f"Unknown initializer {initializer_name!r}; "
                f"registered: {', '.join(self.available()) or '<none>'}"
            )
        self.name = initializer_name
        self._strategy = strategy

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Return a decorator registering a strategy under `name`.

        Registering an existing name raises `ValueError` unless `overwrite`
        is set.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if name in cls.INITIALIZERS and not overwrite:
                raise ValueError(f"Initializer {name!r} is already registered")
            cls.INITIALIZERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(
        self,
        tensor: Tensor,
        *,
        fan_in: int,
        fan_out: int,
        rng: np.random.Generator | None = None,
    ) -> Tensor:
        # Parameterless dimensions can report a zero fan.
        fan_in = max(1, int(fan_in))
        fan_out = max(1, int(fan_out))
        return self._strategy(
            tensor,
            fan_in=fan_in,
            fan_out=fan_out,
            rng=rng if rng is not None else np.random.default_rng(),
        )
