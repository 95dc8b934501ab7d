"""Media metadata models and metadata provider integrations."""

from popstream.backend.information_handlers.base import MetadataProvider
from popstream.backend.information_handlers.models import (
    CaptionTrack,
    CastingDevice,
    EpisodeSummary,
    Item,
    MediaKind,
    SeasonSummary,
)

__all__ = [
    "CaptionTrack",
    "CastingDevice",
    "EpisodeSummary",
    "Item",
    "MediaKind",
    "MetadataProvider",
    "SeasonSummary",
]
