from popstream.backend.player.subtitles.models import SubtitleDescriptor
from popstream.backend.player.subtitles.server import LocalSubtitleServer
from popstream.backend.player.subtitles.service import (
    SubtitleServer,
    SubtitleTrackResolver,
)

__all__ = [
    "LocalSubtitleServer",
    "SubtitleDescriptor",
    "SubtitleServer",
    "SubtitleTrackResolver",
]
