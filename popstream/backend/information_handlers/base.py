from __future__ import annotations

"""Metadata provider contract consumed by the session controller."""

from abc import ABC, abstractmethod
from typing import List

from popstream.backend.information_handlers.models import (
    EpisodeSummary,
    Item,
    MediaKind,
    SeasonSummary,
)


class MetadataProvider(ABC):
    name: str = "metadata"

    @abstractmethod
    async def get_item(self, item_id: str, kind: MediaKind) -> Item:
        raise NotImplementedError

    @abstractmethod
    async def get_seasons(self, item_id: str) -> List[SeasonSummary]:
        raise NotImplementedError

    @abstractmethod
    async def get_season_episodes(self, item_id: str, season: int) -> List[EpisodeSummary]:
        raise NotImplementedError
