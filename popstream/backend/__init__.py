"""Backend public interfaces with lazy loading to avoid circular imports."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

__all__ = [
    "BackendKind",
    "CastingDeviceMonitor",
    "Item",
    "MediaKind",
    "PlaybackBackendAdapter",
    "SessionController",
    "SessionState",
    "SubtitleTrackResolver",
    "TorrentSet",
    "build_controller",
    "merge_and_rank",
]

_MODULE_EXPORTS = {
    "casting": {"CastingDeviceMonitor"},
    "information_handlers": {"Item", "MediaKind"},
    "player": {"BackendKind", "PlaybackBackendAdapter"},
    "player.subtitles": {"SubtitleTrackResolver"},
    "session": {"SessionController", "SessionState", "build_controller"},
    "torrents": {"TorrentSet", "merge_and_rank"},
}

if TYPE_CHECKING:  # pragma: no cover - for static analysis only
    from .casting import CastingDeviceMonitor
    from .information_handlers import Item, MediaKind
    from .player import BackendKind, PlaybackBackendAdapter
    from .player.subtitles import SubtitleTrackResolver
    from .session import SessionController, SessionState, build_controller
    from .torrents import TorrentSet, merge_and_rank


def __getattr__(name: str) -> Any:
    for module_name, symbols in _MODULE_EXPORTS.items():
        if name in symbols:
            module = importlib.import_module(f"{__name__}.{module_name}")
            value = getattr(module, name)
            globals()[name] = value
            return value
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


def __dir__() -> list[str]:
    exported = set(__all__)
    for symbols in _MODULE_EXPORTS.values():
        exported.update(symbols)
    exported.update(globals().keys())
    return sorted(exported)
