"""
Stateless configuration mixin.

This module defines `StatelessConfigMixin`, a helper mixin for layers whose
structure is fully described by their input size.

It provides the config hooks used by the layer registry so parameterless
layers (fixed activations, flatten) take part in graph export and
reconstruction without special cases.
"""

from typing import Any, Dict
from typing_extensions import Self

from ..types._tensor_size import TensorSize


class StatelessConfigMixin:
    """
    Mixin providing configuration hooks for layers with no hyperparameters.

    The only thing such a layer needs to be rebuilt is its input size, which is
    recorded so a reconstructed graph can be recompiled without the original
    first-layer declaration.
    """

    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable configuration dictionary.

        Returns
        -------
        Dict[str, Any]
            `{"input_size": [columns, rows, depth]}` or an empty dict when the
            layer has no input size yet.
        """
        size = getattr(self, "input_size", None)
        return {} if size is None else {"input_size": size.as_list()}

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> Self:
        """
        Reconstruct the layer from a configuration dictionary.

        Parameters
        ----------
        cfg : Dict[str, Any]
            Configuration as produced by `get_config()`.

        Returns
        -------
        StatelessConfigMixin
            A newly constructed instance of the layer.
        """
        size = cfg.get("input_size")
        if size is None:
            return cls()
        return cls(input_size=TensorSize.from_shape(size))
