"""Torrent provider contract and provider routing."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional
from urllib.parse import quote

from popstream.backend.common.errors import InvalidSelection
from popstream.backend.torrents.models import (
    DeliveryMethod,
    QualityLabel,
    TorrentCandidate,
)
from popstream.backend.torrents.selector import merge_and_rank

CandidateResults = Mapping[QualityLabel, TorrentCandidate]

DEFAULT_TRACKERS: tuple[str, ...] = (
    "udp://open.demonii.com:1337/announce",
    "udp://tracker.openbittorrent.com:80",
    "udp://tracker.coppersurfer.tk:6969",
    "udp://tracker.opentrackr.org:1337/announce",
    "udp://tracker.leechers-paradise.org:6969",
)


class TorrentProvider(ABC):
    name: str = "torrents"
    methods: tuple[DeliveryMethod, ...] = ()

    @abstractmethod
    async def query(
        self,
        item_id: str,
        method: DeliveryMethod | str,
        *,
        season: Optional[int] = None,
        episode: Optional[int] = None,
        search_query: str = "",
    ) -> CandidateResults:
        raise NotImplementedError


class RoutingTorrentProvider(TorrentProvider):
    """Sends each query to the provider registered for its delivery method."""

    name = "routing"

    def __init__(self, providers: Iterable[TorrentProvider]) -> None:
        self._routes: Dict[DeliveryMethod, TorrentProvider] = {}
        for provider in providers:
            for method in provider.methods:
                self._routes.setdefault(method, provider)
        self.methods = tuple(self._routes)

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
        provider = self._routes.get(parsed)
        if provider is None:
            raise InvalidSelection(f"No torrent provider for '{parsed.value}'")
        return await provider.query(item_id, parsed, season=season, episode=episode, search_query=search_query)


def parse_method(value: DeliveryMethod | str) -> DeliveryMethod:
    if isinstance(value, DeliveryMethod):
        return value
    try:
        return DeliveryMethod(value)
    except ValueError as exc:
        raise InvalidSelection(f"Unknown torrent query method '{value}'") from exc


def build_magnet(info_hash: str, name: str, trackers: Iterable[str] = DEFAULT_TRACKERS) -> str:
    parts = [f"magnet:?xt=urn:btih:{info_hash}", f"dn={quote(name)}"]
    parts.extend(f"tr={quote(tracker)}" for tracker in trackers)
    return "&".join(parts)


def best_per_quality(candidates: Iterable[TorrentCandidate]) -> Dict[QualityLabel, TorrentCandidate]:
    grouped: Dict[QualityLabel, list[TorrentCandidate]] = {}
    for candidate in candidates:
        if candidate.quality is None:
            continue
        grouped.setdefault(candidate.quality, []).append(candidate)
    return {label: merge_and_rank(group) for label, group in grouped.items()}
