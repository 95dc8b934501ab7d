"""EZTV show torrents, single episodes and complete seasons."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Iterable, List, Mapping, Optional

from popstream.backend.common.errors import InvalidSelection
from popstream.backend.common.logging import get_logger
from popstream.backend.network_handlers.session import HttpSession
from popstream.backend.torrents.models import DeliveryMethod, QualityLabel, TorrentCandidate
from popstream.backend.torrents.providers.base import (
    CandidateResults,
    TorrentProvider,
    best_per_quality,
    parse_method,
)
from popstream.backend.torrents.selector import classify_health

log = get_logger(__name__)

_SERVICE_NAME = "eztv"
_QUALITY_PATTERN = re.compile(r"\b(1080p|720p|480p)\b", re.IGNORECASE)
_PAGE_SIZE = 100
_MAX_PAGES = 3


def parse_quality(title: str) -> Optional[QualityLabel]:
    match = _QUALITY_PATTERN.search(title or "")
    if not match:
        return None
    return QualityLabel(match.group(1).lower())


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class EztvTorrentProvider(TorrentProvider):
    name = _SERVICE_NAME
    methods = (DeliveryMethod.SHOWS, DeliveryMethod.SEASON_COMPLETE)

    def __init__(self, session: Optional[HttpSession] = None) -> None:
        self._session = session or HttpSession(_SERVICE_NAME)

    async def query(
        self,
        item_id: str,
        method: DeliveryMethod | str,
        *,
        season: Optional[int] = None,
        episode: Optional[int] = None,
        search_query: str = "",
    ) -> CandidateResults:
        parsed = parse_method(method)
        if parsed not in self.methods:
            raise InvalidSelection(f"{self.name} cannot serve '{parsed.value}'")
        if season is None or (parsed is DeliveryMethod.SHOWS and episode is None):
            raise InvalidSelection("season and episode are required for show torrents")
        torrents = await asyncio.to_thread(self._fetch_all, item_id)
        if parsed is DeliveryMethod.SHOWS:
            selected = [t for t in torrents if _as_int(t.get("season")) == season and _as_int(t.get("episode")) == episode]
        else:
            selected = [t for t in torrents if _as_int(t.get("season")) == season and not _as_int(t.get("episode"))]
        if not selected:
            log.info("torrents_not_found", provider=self.name, item_id=item_id, season=season, episode=episode)
        return best_per_quality(self._candidates(selected, parsed))

    def _fetch_all(self, item_id: str) -> List[Mapping[str, Any]]:
        imdb_numeric = item_id[2:] if item_id.lower().startswith("tt") else item_id
        torrents: List[Mapping[str, Any]] = []
        for page in range(1, _MAX_PAGES + 1):
            payload = self._session.get_json(
                "/get-torrents",
                params={"imdb_id": imdb_numeric, "limit": _PAGE_SIZE, "page": page},
            ) or {}
            batch = payload.get("torrents") or []
            torrents.extend(batch)
            total = _as_int(payload.get("torrents_count")) or 0
            if len(batch) < _PAGE_SIZE or len(torrents) >= total:
                break
        return torrents

    def _candidates(self, torrents: Iterable[Mapping[str, Any]], method: DeliveryMethod) -> List[TorrentCandidate]:
        candidates: List[TorrentCandidate] = []
        for torrent in torrents:
            magnet = torrent.get("magnet_url")
            quality = parse_quality(torrent.get("title") or torrent.get("filename") or "")
            if not magnet or quality is None:
                continue
            seeders = _as_int(torrent.get("seeds")) or 0
            candidates.append(
                TorrentCandidate(
                    quality=quality,
                    magnet=magnet,
                    health=classify_health(seeders, _as_int(torrent.get("peers")) or 0),
                    seeders=seeders,
                    method=method,
                )
            )
        return candidates
