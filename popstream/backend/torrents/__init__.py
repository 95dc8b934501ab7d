"""Torrent candidate models, source ranking and provider adapters."""

from popstream.backend.torrents.models import (
    QUALITY_LABELS,
    DeliveryMethod,
    HealthClass,
    QualityLabel,
    TorrentCandidate,
    TorrentSet,
)
from popstream.backend.torrents.selector import (
    build_merged_set,
    build_single_source_set,
    classify_health,
    merge_and_rank,
)

__all__ = [
    "QUALITY_LABELS",
    "DeliveryMethod",
    "HealthClass",
    "QualityLabel",
    "TorrentCandidate",
    "TorrentSet",
    "build_merged_set",
    "build_single_source_set",
    "classify_health",
    "merge_and_rank",
]
