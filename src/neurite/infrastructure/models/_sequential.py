"""
Sequential graph.

This module defines `Sequential`, the container that owns an ordered list of
layers and applies them in order:

    y = L_n(...L_2(L_1(x)))

`Sequential` wires the layers together at compile time: the first layer's
declared `input_size` is handed down the chain, each layer computes its
`output_size`, and every layer receives the graph's random generator.

Structure versioning
--------------------
`structure_version` increases whenever the layer list changes (`add`) or the
graph is recompiled. Optimizers compare it against the version their per-layer
state was built for and rebuild that state when it is stale.

Notes
-----
- The graph owns its layers; layers do not reference the graph.
- `forward()` validates the compiled state but does not switch training modes;
  `predict()` runs in inference mode and restores the previous modes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from ...config import load_settings
from ...domain._errors import ConfigurationError, NotCompiledError
from ...domain.types._tensor_size import TensorSize
from .._layer import Layer, SizeLike, as_size
from ..serialization._serialization_core import layer_from_config, layer_to_config
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


class Sequential:
    """
    Ordered, compiled stack of layers.

    Parameters
    ----------
    *layers : Layer
        Zero or more layers, appended in order.
    seed : int | None, optional
        Seed of the generator handed to every layer at compile time. The same
        seed yields the same initial parameters and dropout masks.
    """

    def __init__(self, *layers: Layer, seed: Optional[int] = None) -> None:
        self._layers: List[Layer] = []
        self.seed = seed
        self.structure_version = 0
        self.is_compiled = False
        for layer in layers:
            self.add(layer)

    def add(self, layer: Layer) -> None:
        """
        Append a layer. Invalidates the compiled state.

        Raises
        ------
        TypeError
            If `layer` is not a `Layer`.
        """
        if not isinstance(layer, Layer):
            raise TypeError(f"Sequential.add expects a Layer, got: {type(layer)}")
        self._layers.append(layer)
        self.is_compiled = False
        self.structure_version += 1

    def compile(self, input_size: SizeLike = None) -> None:
        """
        Compile every layer in order.

        Parameters
        ----------
        input_size : TensorSize | Sequence[int] | None, optional
            Input size of the graph. Defaults to the first layer's declared
            `input_size`.

        Raises
        ------
        ConfigurationError
            If the graph is empty or no input size is known.
        """
        if not self._layers:
            raise ConfigurationError("Cannot compile an empty Sequential graph.")

        size: Optional[TensorSize] = as_size(input_size) or self._layers[0].input_size
        if size is None:
            raise ConfigurationError(
                "The first layer must declare an input_size (or pass one to compile())."
            )

        seed = self.seed if self.seed is not None else load_settings().seed
        rng = np.random.default_rng(seed)
        for layer in self._layers:
            layer.compile(size, rng)
            size = layer.output_size

        self.is_compiled = True
        self.structure_version += 1
        logger.info(
            "Compiled Sequential graph with %d layers, %d parameters",
            len(self._layers),
            self.parameter_count,
        )

    @property
    def input_size(self) -> Optional[TensorSize]:
        return self._layers[0].input_size if self._layers else None

    @property
    def output_size(self) -> Optional[TensorSize]:
        return self._layers[-1].output_size if self._layers else None

    @property
    def parameter_count(self) -> int:
        return sum(layer.parameter_count for layer in self._layers)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def forward(self, tensor: Tensor) -> Tensor:
        """
        Apply all layers in order.

        Returns
        -------
        Tensor
            Output of the last layer. Its graph reaches back to `tensor`
            through one node per layer.

        Raises
        ------
        NotCompiledError
            If `compile()` has not been called since the last change.
        """
        if not self.is_compiled:
            raise NotCompiledError("Sequential")
        out = tensor if isinstance(tensor, Tensor) else Tensor(tensor)
        for layer in self._layers:
            out = layer(out)
        return out

    def __call__(self, tensor: Tensor) -> Tensor:
        return self.forward(tensor)

    def predict(self, tensor: Tensor) -> Tensor:
        """
        Run an inference forward pass and return a leaf tensor.

        Training modes are restored afterwards. Not safe to call while another
        thread is training the same graph.
        """
        modes = [layer.is_training for layer in self._layers]
        self.eval()
        try:
            return self.forward(tensor).detached()
        finally:
            for layer, mode in zip(self._layers, modes):
                layer.train(mode)

    def train(self, mode: bool = True) -> None:
        for layer in self._layers:
            layer.train(mode)

    def eval(self) -> None:
        self.train(False)

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------
    @property
    def layers(self) -> Tuple[Layer, ...]:
        return tuple(self._layers)

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __getitem__(self, idx: int) -> Layer:
        return self._layers[idx]

    def summary(self) -> str:
        """
        Human-readable table of layer kinds, output sizes and parameter counts.
        """
        lines = [f"{self.__class__.__name__}("]
        for i, layer in enumerate(self._layers):
            out = layer.output_size.as_list() if layer.output_size is not None else "?"
            lines.append(f"  ({i}): {layer.kind:<16} out={out} params={layer.parameter_count}")
        lines.append(f")  total params={self.parameter_count}")
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return the graph structure as a JSON-serializable tree.
        """
        return {
            "seed": self.seed,
            "layers": [layer_to_config(layer) for layer in self._layers],
        }

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], *, compile: bool = True) -> "Sequential":
        """
        Rebuild a graph from `get_config()` output.

        Parameters
        ----------
        cfg : dict
            Structure tree.
        compile : bool, optional
            Compile the rebuilt graph immediately. Defaults to True.
        """
        graph = cls(
            *(layer_from_config(node) for node in cfg.get("layers", [])),
            seed=cfg.get("seed"),
        )
        if compile and len(graph):
            graph.compile()
        return graph

    def state(self) -> Dict[str, np.ndarray]:
        """
        Flattened parameter state keyed `"<index>.<name>"`.
        """
        out: Dict[str, np.ndarray] = {}
        for i, layer in enumerate(self._layers):
            for name, arr in layer.state().items():
                out[f"{i}.{name}"] = arr
        return out

    def load_state(self, state: Dict[str, np.ndarray]) -> None:
        """
        Load `state()` output into the compiled layers.
        """
        if not self.is_compiled:
            raise NotCompiledError("Sequential")
        for i, layer in enumerate(self._layers):
            prefix = f"{i}."
            layer.load_state(
                {k[len(prefix):]: v for k, v in state.items() if k.startswith(prefix)}
            )
