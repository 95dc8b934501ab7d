"""Torrent streaming, playback backends and subtitle orchestration."""

from popstream.backend.player.backends import (
    BackendKind,
    PlaybackBackend,
    PlaybackBackendAdapter,
    default_factories,
)
from popstream.backend.player.engine import ServingInfo, TorrentEngine, TorrentStream
from popstream.backend.player.exceptions import PlayerError, SubtitleError, TorrentEngineError

__all__ = [
    "BackendKind",
    "PlaybackBackend",
    "PlaybackBackendAdapter",
    "PlayerError",
    "ServingInfo",
    "SubtitleError",
    "TorrentEngine",
    "TorrentEngineError",
    "TorrentStream",
    "default_factories",
]
