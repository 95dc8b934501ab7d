"""YTS movie torrents."""

from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional

from popstream.backend.common.logging import get_logger
from popstream.backend.network_handlers.session import HttpSession
from popstream.backend.torrents.models import DeliveryMethod, QualityLabel, TorrentCandidate
from popstream.backend.torrents.providers.base import (
    CandidateResults,
    TorrentProvider,
    best_per_quality,
    build_magnet,
    parse_method,
)
from popstream.backend.torrents.selector import classify_health

log = get_logger(__name__)

_SERVICE_NAME = "yts"


class YtsTorrentProvider(TorrentProvider):
    name = _SERVICE_NAME
    methods = (DeliveryMethod.MOVIES,)

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
        parse_method(method)
        payload = await asyncio.to_thread(
            self._session.get_json,
            "/list_movies.json",
            params={"query_term": item_id, "limit": 1},
        )
        movies = ((payload or {}).get("data") or {}).get("movies") or []
        if not movies:
            log.info("torrents_not_found", provider=self.name, item_id=item_id)
            return {}
        return best_per_quality(self._candidates(movies[0], search_query))

    def _candidates(self, movie: Mapping[str, Any], search_query: str) -> List[TorrentCandidate]:
        title = movie.get("title_long") or movie.get("title") or search_query
        candidates: List[TorrentCandidate] = []
        for torrent in movie.get("torrents") or []:
            try:
                quality = QualityLabel(torrent.get("quality"))
            except ValueError:
                continue
            info_hash = torrent.get("hash")
            if not info_hash:
                continue
            seeders = int(torrent.get("seeds") or 0)
            candidates.append(
                TorrentCandidate(
                    quality=quality,
                    magnet=build_magnet(info_hash, f"{title} [{quality.value}]"),
                    health=classify_health(seeders, int(torrent.get("peers") or 0)),
                    seeders=seeders,
                    method=DeliveryMethod.MOVIES,
                )
            )
        return candidates
