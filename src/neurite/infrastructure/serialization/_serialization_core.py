"""
Layer registry and configuration trees.

Layers register themselves under a kind tag with `@register_layer()`. The tag
is stored in every exported configuration node, so a graph can be rebuilt
from plain JSON-compatible dictionaries without importing layer classes by
hand.

Node format
-----------
    {
      "type": "Dense",
      "config": {...}
    }
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Type

from ...domain._errors import ConfigurationError

logger = logging.getLogger(__name__)

_LAYER_REGISTRY: dict[str, Type[Any]] = {}


def register_layer(name: Optional[str] = None) -> Callable[[Type[Any]], Type[Any]]:
    """
    Decorator to register a Layer class under a kind tag.

    The tag defaults to the class name and is also assigned to `cls.kind`.
    """

    def deco(cls: Type[Any]) -> Type[Any]:
        key = name or cls.__name__
        existing = _LAYER_REGISTRY.get(key)
        if existing is not None and existing is not cls:
            logger.warning("Layer kind %r re-registered by %s", key, cls.__qualname__)
        _LAYER_REGISTRY[key] = cls
        cls.kind = key
        return cls

    return deco


def registered_layers() -> tuple[str, ...]:
    """Return all registered kind tags (sorted)."""
    return tuple(sorted(_LAYER_REGISTRY))


def layer_to_config(layer: Any) -> Dict[str, Any]:
    """
    Convert a layer into a `{"type", "config"}` node.
    """
    kind = getattr(layer, "kind", layer.__class__.__name__)
    return {"type": kind, "config": layer.get_config()}


def layer_from_config(node: Dict[str, Any]) -> Any:
    """
    Rebuild a layer from a `{"type", "config"}` node.

    Raises
    ------
    ConfigurationError
        If the kind tag is unknown.
    """
    kind = str(node["type"])
    cls = _LAYER_REGISTRY.get(kind)
    if cls is None:
        raise ConfigurationError(
            f"Unknown layer type '{kind}'. Register it via @register_layer."
        )
    return cls.from_config(dict(node.get("config") or {}))
