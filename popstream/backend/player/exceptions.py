from __future__ import annotations

"""Exceptions for the player subsystem."""

from popstream.backend.common.errors import PopstreamError, ProviderError


class PlayerError(PopstreamError):
    """Top-level error raised by the player subsystem."""


class SubtitleError(PlayerError, ProviderError):
    """Raised when subtitle discovery or download fails."""


class SubtitleProviderUnavailable(SubtitleError):
    """Raised when a specific provider cannot service the request."""


class TorrentEngineError(PlayerError, ProviderError):
    """Raised when the torrent engine cannot start or serve a stream."""
