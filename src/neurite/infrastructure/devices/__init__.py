"""
Device backends.

Only the numpy `CPU` device ships with neurite. Layers accept either a device
instance or its name.
"""

from __future__ import annotations

from typing import Union

from ...domain.device._device_protocol import IDevice
from ._cpu import CPU

_DEVICES = {"cpu": CPU}


def get_device(device: Union[IDevice, str, None] = None) -> IDevice:
    """
    Resolve a device instance from an instance, a name, or None (CPU).
    """
    if device is None:
        return CPU()
    if isinstance(device, str):
        try:
            return _DEVICES[device.lower()]()
        except KeyError as e:
            raise ValueError(
                f"Unknown device {device!r}; available: {', '.join(_DEVICES)}"
            ) from e
    if not isinstance(device, IDevice):
        raise TypeError(f"Expected an IDevice, got {type(device)!r}")
    return device


__all__ = ["CPU", "get_device"]
