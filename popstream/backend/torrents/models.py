"""Torrent candidate models shared by providers, the selector and the session."""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class QualityLabel(str, Enum):
    """Fixed set of quality tiers a torrent provider reports."""

    FHD = "1080p"
    HD = "720p"
    SD = "480p"

    @property
    def tier(self) -> int:
        return _QUALITY_TIERS[self]


_QUALITY_TIERS = {QualityLabel.FHD: 3, QualityLabel.HD: 2, QualityLabel.SD: 1}

QUALITY_LABELS: tuple[QualityLabel, ...] = (QualityLabel.FHD, QualityLabel.HD, QualityLabel.SD)


class HealthClass(str, Enum):
    """Coarse swarm health, ordered ``poor < decent < good``."""

    POOR = "poor"
    DECENT = "decent"
    GOOD = "good"

    @property
    def rank(self) -> int:
        return _HEALTH_RANKS[self]


_HEALTH_RANKS = {HealthClass.POOR: 1, HealthClass.DECENT: 2, HealthClass.GOOD: 3}


class DeliveryMethod(str, Enum):
    MOVIES = "movies"
    SHOWS = "shows"
    SEASON_COMPLETE = "season_complete"


class TorrentCandidate(BaseModel):
    """A single torrent source. All-empty values form the placeholder."""

    model_config = ConfigDict(frozen=True)

    quality: Optional[QualityLabel] = None
    magnet: Optional[str] = None
    health: Optional[HealthClass] = None
    seeders: int = Field(default=0, ge=0)
    method: Optional[DeliveryMethod] = None

    @classmethod
    def placeholder(cls) -> "TorrentCandidate":
        return PLACEHOLDER

    @property
    def is_placeholder(self) -> bool:
        return (
            self.quality is None
            and not self.magnet
            and self.health is None
            and self.seeders == 0
            and self.method is None
        )

    @property
    def is_playable(self) -> bool:
        return bool(self.magnet) and self.method is not None


PLACEHOLDER = TorrentCandidate()


class TorrentSet(BaseModel):
    """Per-quality candidates plus the globally ranked ideal pick.

    Every :data:`QUALITY_LABELS` entry is always present.
    """

    model_config = ConfigDict(frozen=True)

    by_quality: Dict[QualityLabel, TorrentCandidate]
    ideal: TorrentCandidate = PLACEHOLDER

    @classmethod
    def empty(cls) -> "TorrentSet":
        return cls.from_results({}, PLACEHOLDER)

    @classmethod
    def from_results(
        cls,
        results: Mapping[QualityLabel, Optional[TorrentCandidate]],
        ideal: Optional[TorrentCandidate] = None,
    ) -> "TorrentSet":
        filled = {label: results.get(label) or PLACEHOLDER for label in QUALITY_LABELS}
        return cls(by_quality=filled, ideal=ideal or PLACEHOLDER)

    def __getitem__(self, label: QualityLabel | str) -> TorrentCandidate:
        return self.by_quality[QualityLabel(label)]

    def candidate_for(self, quality: Optional[QualityLabel | str]) -> TorrentCandidate:
        if quality is None:
            return self.ideal
        return self[quality]
