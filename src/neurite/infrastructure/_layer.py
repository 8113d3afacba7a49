"""
Infrastructure layer base class.

This module provides a concrete `Layer` implementation that satisfies the
domain-level `ILayer` protocol. It implements the conveniences shared by every
layer variant:

- input/output size bookkeeping and the `compile()` lifecycle
- parameter initialization through the `WeightInitializer` registry
- forward-input validation (`NotCompiledError`, `ShapeMismatchError`)
- graph-node attachment for layer outputs (`_attach`)
- the default `apply()` update rule (subtract deltas in place)
- configuration and parameter-state hooks used by the layer registry and the
  payload encoder

Subclasses implement `_compute_output_size`, optionally `_build`, and
`forward`.
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Dict, Optional, Sequence, Union

import numpy as np

from ..domain._errors import NotCompiledError, ShapeMismatchError, ConfigurationError
from ..domain._layer import Gradient, ILayer
from ..domain.device._device_protocol import IDevice
from ..domain.types._tensor_size import TensorSize
from .devices import get_device
from .tensor._tensor import Tensor
from .tensor._tensor_context import BackwardFn, Context
from .utils.weight_initializer import WeightInitializer

logger = logging.getLogger(__name__)

SizeLike = Union[TensorSize, Sequence[int], None]


def as_size(size: SizeLike) -> Optional[TensorSize]:
    """
    Coerce a `[columns, rows, depth]` sequence (or TensorSize) into TensorSize.
    """
    if size is None or isinstance(size, TensorSize):
        return size
    return TensorSize.from_shape(size)


class Layer(ILayer):
    """
    Infrastructure base class for layers.

    Parameters
    ----------
    input_size : TensorSize | Sequence[int] | None, optional
        Size of the incoming tensors, `[columns, rows, depth]`. Only required
        on the first layer of a graph; later layers receive it at compile time.
    trainable : bool, optional
        When False, `apply()` leaves the parameters untouched.
    bias_enabled : bool, optional
        Whether the layer owns (and updates) a bias tensor.
    initializer : str, optional
        Registry name of the weight initializer.
    device : IDevice | str | None, optional
        Kernel backend. Defaults to the numpy CPU device.

    Attributes
    ----------
    weights, biases : Tensor
        Parameter tensors. Empty for parameterless layers.
    is_training : bool
        Training/inference switch read by Dropout and BatchNormalize.
    uses_optimizer : ClassVar[bool]
        False for layers that update their own parameters during backward.
    """

    kind: ClassVar[str] = "Layer"
    uses_optimizer: ClassVar[bool] = True

    def __init__(
        self,
        *,
        input_size: SizeLike = None,
        trainable: bool = True,
        bias_enabled: bool = True,
        initializer: str = "xavier_normal",
        device: Union[IDevice, str, None] = None,
    ) -> None:
        if initializer not in WeightInitializer.available():
            raise ValueError(
                f"Unknown initializer {initializer!r}; "
                f"available: {', '.join(WeightInitializer.available())}"
            )
        self.input_size: Optional[TensorSize] = as_size(input_size)
        self.output_size: Optional[TensorSize] = None
        self.weights = Tensor.empty()
        self.biases = Tensor.empty()
        self.trainable = bool(trainable)
        self.bias_enabled = bool(bias_enabled)
        self.initializer = initializer
        self.device: IDevice = get_device(device)
        self.is_training = True
        self.is_compiled = False
        self.rng: np.random.Generator = np.random.default_rng()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def compile(
        self, input_size: SizeLike = None, rng: Optional[np.random.Generator] = None
    ) -> None:
        """
        Fix the input/output sizes and initialize parameters.

        Parameters
        ----------
        input_size : TensorSize | Sequence[int] | None
            Size handed down by the previous layer. Falls back to the size
            given at construction.
        rng : numpy.random.Generator | None
            Generator used for initialization and stochastic behaviour.

        Raises
        ------
        ConfigurationError
            If no input size is known, or the computed output size is empty.
        """
        size = as_size(input_size) or self.input_size
        if size is None:
            raise ConfigurationError(
                f"{self.kind} needs an input_size to compile; declare it on the "
                "first layer of the graph."
            )
        if size.is_empty():
            raise ConfigurationError(f"{self.kind} cannot take an empty input {size}")

        self.input_size = size
        self.rng = rng if rng is not None else np.random.default_rng()
        self.output_size = self._compute_output_size(size)
        if self.output_size.is_empty():
            raise ConfigurationError(
                f"{self.kind} produces an empty output for input {size.as_list()}"
            )
        self._build()
        self.is_compiled = True
        logger.debug(
            "Compiled %s: %s -> %s",
            self.kind,
            size.as_list(),
            self.output_size.as_list(),
        )

    def _compute_output_size(self, input_size: TensorSize) -> TensorSize:
        return input_size

    def _build(self) -> None:
        """Allocate and initialize parameters. Parameterless by default."""

    def _initialize(self, size: TensorSize, *, fan_in: int, fan_out: int) -> Tensor:
        """
        Allocate a tensor of `size` and run the configured initializer on it.
        """
        tensor = Tensor.zeros(size)
        return WeightInitializer(self.initializer)(
            tensor, fan_in=fan_in, fan_out=fan_out, rng=self.rng
        )

    # ------------------------------------------------------------------
    # Forward helpers
    # ------------------------------------------------------------------
    def _check_input(self, tensor: Tensor) -> None:
        if not self.is_compiled:
            raise NotCompiledError(self.kind)
        if tensor.value.shape != self.input_size.value_shape:
            raise ShapeMismatchError(
                f"{self.kind} received an input of the wrong size",
                expected=self.input_size.as_list(),
                actual=tensor.shape,
            )

    def _attach(
        self,
        out: np.ndarray,
        tensor: Tensor,
        backward_fn: BackwardFn,
        **meta: Any,
    ) -> Tensor:
        """
        Wrap `out` in a Tensor whose graph node points back to `tensor`.
        """
        ctx = Context(op=self.kind, backward_fn=backward_fn, saved_meta=dict(meta))
        result = Tensor._wrap(out.astype(np.float32, copy=False), context=ctx, label=self.kind)
        result.set_graph(tensor)
        return result

    def forward(self, tensor: Tensor) -> Tensor:
        """
        Execute the forward computation of the layer.

        Subclasses must implement this.
        """
        raise NotImplementedError

    def __call__(self, tensor: Tensor) -> Tensor:
        return self.forward(tensor)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def apply(self, gradients: Gradient, learning_rate: float) -> None:
        """
        Subtract the given deltas from the parameters in place.

        Parameters
        ----------
        gradients : Gradient
            `(weights, biases)` deltas, already scaled by the optimizer.
        learning_rate : float
            Unused by the default rule.

        Raises
        ------
        ShapeMismatchError
            If a delta does not match its parameter.
        """
        if not self.trainable:
            return
        self._subtract(self.weights, gradients.weights, "weights")
        if self.bias_enabled:
            self._subtract(self.biases, gradients.biases, "biases")

    def updated_parameters(self, gradients: Gradient) -> tuple[np.ndarray, np.ndarray]:
        """
        Return the `(weights, biases)` values `apply(gradients)` would leave,
        without modifying the layer.

        Raises
        ------
        ShapeMismatchError
            If a delta does not match its parameter.
        """
        weights, biases = self.weights.value, self.biases.value
        if not self.trainable:
            return weights, biases
        dw = self._checked_delta(self.weights, gradients.weights, "weights")
        if dw is not None:
            weights = weights - dw
        if self.bias_enabled:
            db = self._checked_delta(self.biases, gradients.biases, "biases")
            if db is not None:
                biases = biases - db
        return weights, biases

    def _checked_delta(
        self, target: Tensor, delta: Optional[Tensor], name: str
    ) -> Optional[np.ndarray]:
        if target.is_empty() or delta is None or delta.is_empty():
            return None
        if target.value.shape != delta.value.shape:
            raise ShapeMismatchError(
                f"{self.kind} {name} delta has the wrong size",
                expected=target.shape,
                actual=delta.shape,
            )
        return delta.value

    def _subtract(self, target: Tensor, delta: Tensor, name: str) -> None:
        d = self._checked_delta(target, delta, name)
        if d is not None:
            target.value -= d

    def parameter_sizes(self) -> tuple[TensorSize, TensorSize]:
        """Return the `(weights, biases)` sizes gradients must have."""
        return self.weights.size, self.biases.size

    @property
    def parameter_count(self) -> int:
        return int(self.weights.value.size + self.biases.value.size)

    def train(self, mode: bool = True) -> None:
        self.is_training = bool(mode)

    def eval(self) -> None:
        self.train(False)

    # ------------------------------------------------------------------
    # Serialization hooks
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable configuration for this layer.

        Subclasses extend the dictionary with their structural
        hyperparameters; every key must be a constructor keyword.
        """
        cfg: Dict[str, Any] = {
            "trainable": self.trainable,
            "bias_enabled": self.bias_enabled,
            "initializer": self.initializer,
            "device": self.device.name,
        }
        if self.input_size is not None:
            cfg["input_size"] = self.input_size.as_list()
        return cfg

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Layer":
        """
        Reconstruct a layer from `get_config()` output.
        """
        return cls(**cfg)

    def state(self) -> Dict[str, np.ndarray]:
        """
        Return copies of the parameter arrays (plus any extra layer state).
        """
        return {"weights": self.weights.to_numpy(), "biases": self.biases.to_numpy()}

    def load_state(self, state: Dict[str, np.ndarray]) -> None:
        """
        Overwrite parameters from `state()` output.

        Raises
        ------
        KeyError
            If an entry is missing.
        ShapeMismatchError
            If an entry's shape differs from the compiled parameter.
        """
        current = self.state()
        for key, arr in current.items():
            if key not in state:
                raise KeyError(f"Missing '{key}' in {self.kind} state")
            incoming = np.asarray(state[key], dtype=np.float32)
            if incoming.shape != arr.shape:
                raise ShapeMismatchError(
                    f"{self.kind} state '{key}' has the wrong shape",
                    expected=list(arr.shape),
                    actual=list(incoming.shape),
                )
        self._load_arrays({k: np.asarray(state[k], dtype=np.float32) for k in current})

    def _load_arrays(self, arrays: Dict[str, np.ndarray]) -> None:
        self.weights = Tensor(arrays["weights"])
        self.biases = Tensor(arrays["biases"])

    def __repr__(self) -> str:
        out = self.output_size.as_list() if self.output_size is not None else None
        return f"{self.kind}(output_size={out})"
