"""Subtitle provider implementations."""

from popstream.backend.player.subtitles.providers.base import SubtitleProvider
from popstream.backend.player.subtitles.providers.opensubtitles import (
    OpenSubtitlesConfig,
    OpenSubtitlesProvider,
)

__all__ = ["OpenSubtitlesConfig", "OpenSubtitlesProvider", "SubtitleProvider"]
