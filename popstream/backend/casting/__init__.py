"""Cast device discovery and the periodic device monitor."""

from popstream.backend.casting.discovery import (
    CastError,
    CastingDiscovery,
    ChromecastDiscovery,
    DeviceNotFoundError,
)
from popstream.backend.casting.monitor import CastingDeviceMonitor

__all__ = [
    "CastError",
    "CastingDeviceMonitor",
    "CastingDiscovery",
    "ChromecastDiscovery",
    "DeviceNotFoundError",
]
