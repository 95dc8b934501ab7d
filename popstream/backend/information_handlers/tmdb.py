"""TMDb-backed :class:`MetadataProvider`.

Items are addressed by IMDb id (``tt...``) as torrent and subtitle providers
expect; numeric ids are treated as TMDb ids. Every request goes through
:class:`HttpSession` in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from popstream.backend.common.errors import ProviderError
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.base import MetadataProvider
from popstream.backend.information_handlers.models import (
    EpisodeSummary,
    ImageAsset,
    Item,
    MediaKind,
    Runtime,
    SeasonSummary,
)
from popstream.backend.network_handlers.session import HttpSession
from popstream.config import settings

log = get_logger(__name__)

_SERVICE_NAME = "tmdb"
_DEFAULT_IMAGE_BASE = "https://image.tmdb.org/t/p/"


class TmdbMetadataProvider(MetadataProvider):
    name = _SERVICE_NAME

    def __init__(
        self,
        *,
        session: Optional[HttpSession] = None,
        api_key: Optional[str] = None,
        language: str = "en-US",
    ) -> None:
        self._session = session or HttpSession(_SERVICE_NAME)
        self._api_key = api_key or settings.get_api_key(_SERVICE_NAME)
        self._language = language
        self._image_config: Mapping[str, Any] = (settings.get_service_config(_SERVICE_NAME) or {}).get("images", {}) or {}
        self._tmdb_ids: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_item(self, item_id: str, kind: MediaKind) -> Item:
        return await asyncio.to_thread(self._get_item, item_id, MediaKind.parse(kind))

    async def get_seasons(self, item_id: str) -> List[SeasonSummary]:
        return await asyncio.to_thread(self._get_seasons, item_id)

    async def get_season_episodes(self, item_id: str, season: int) -> List[EpisodeSummary]:
        return await asyncio.to_thread(self._get_season_episodes, item_id, season)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _request_json(self, path: str, **params: Any) -> Dict[str, Any]:
        if not self._api_key:
            raise ProviderError("TMDb api_key is not configured")
        query = {"api_key": self._api_key, "language": self._language, **params}
        payload = self._session.get_json(path, params=query)
        return payload if isinstance(payload, dict) else {}

    def _resolve_tmdb_id(self, item_id: str, kind: MediaKind) -> str:
        if item_id.isdigit():
            return item_id
        cached = self._tmdb_ids.get(item_id)
        if cached:
            return cached
        payload = self._request_json(f"/find/{item_id}", external_source="imdb_id")
        key = "movie_results" if kind is MediaKind.MOVIE else "tv_results"
        results = payload.get(key) or []
        if not results:
            raise ProviderError(f"TMDb has no {kind.value} for '{item_id}'")
        tmdb_id = str(results[0]["id"])
        self._tmdb_ids[item_id] = tmdb_id
        log.debug("tmdb_id_resolved", item_id=item_id, tmdb_id=tmdb_id)
        return tmdb_id

    def _get_item(self, item_id: str, kind: MediaKind) -> Item:
        tmdb_id = self._resolve_tmdb_id(item_id, kind)
        if kind is MediaKind.MOVIE:
            payload = self._request_json(f"/movie/{tmdb_id}", append_to_response="videos,release_dates,external_ids")
        else:
            payload = self._request_json(f"/tv/{tmdb_id}", append_to_response="videos,content_ratings,external_ids")
        try:
            return self._build_item(payload, kind, item_id, tmdb_id)
        except ValidationError as exc:
            raise ProviderError(f"TMDb returned an invalid {kind.value}: {exc}") from exc

    def _build_item(self, payload: Mapping[str, Any], kind: MediaKind, item_id: str, tmdb_id: str) -> Item:
        external = payload.get("external_ids") or {}
        imdb_id = payload.get("imdb_id") or external.get("imdb_id") or ("" if item_id.isdigit() else item_id)
        date_value = payload.get("release_date") if kind is MediaKind.MOVIE else payload.get("first_air_date")
        year = int(date_value[:4]) if date_value and date_value[:4].isdigit() else None
        if kind is MediaKind.MOVIE:
            minutes = payload.get("runtime")
        else:
            runtimes = payload.get("episode_run_time") or []
            minutes = runtimes[0] if runtimes else None
        external_ids = {"tmdb": tmdb_id}
        if imdb_id:
            external_ids["imdb"] = imdb_id
        return Item(
            id=imdb_id or tmdb_id,
            kind=kind,
            title=payload.get("title") or payload.get("name") or "",
            year=year,
            summary=payload.get("overview") or "",
            rating=payload.get("vote_average"),
            certification=_certification(payload, kind),
            genres=tuple(g.get("name") for g in payload.get("genres") or [] if g.get("name")),
            runtime=Runtime.from_minutes(minutes),
            trailer=_trailer_url(payload),
            poster=self._image(payload.get("poster_path"), "poster_size", "w500"),
            backdrop=self._image(payload.get("backdrop_path"), "backdrop_size", "w1280"),
            external_ids=external_ids,
        )

    def _image(self, path: Optional[str], size_key: str, default_size: str) -> Optional[ImageAsset]:
        if not path:
            return None
        base = self._image_config.get("base_url") or _DEFAULT_IMAGE_BASE
        size = self._image_config.get(size_key) or default_size
        return ImageAsset(url=f"{base.rstrip('/')}/{size}{path}")

    def _get_seasons(self, item_id: str) -> List[SeasonSummary]:
        tmdb_id = self._resolve_tmdb_id(item_id, MediaKind.SHOW)
        payload = self._request_json(f"/tv/{tmdb_id}")
        seasons: List[SeasonSummary] = []
        for entry in payload.get("seasons") or []:
            number = entry.get("season_number")
            # season 0 holds specials
            if not isinstance(number, int) or number < 1:
                continue
            seasons.append(
                SeasonSummary(
                    season=number,
                    title=entry.get("name"),
                    episode_count=entry.get("episode_count"),
                    overview=entry.get("overview"),
                )
            )
        return seasons

    def _get_season_episodes(self, item_id: str, season: int) -> List[EpisodeSummary]:
        tmdb_id = self._resolve_tmdb_id(item_id, MediaKind.SHOW)
        payload = self._request_json(f"/tv/{tmdb_id}/season/{int(season)}")
        episodes: List[EpisodeSummary] = []
        for entry in payload.get("episodes") or []:
            number = entry.get("episode_number")
            if not isinstance(number, int):
                continue
            episodes.append(
                EpisodeSummary(
                    season=int(season),
                    episode=number,
                    title=entry.get("name"),
                    overview=entry.get("overview"),
                    air_date=entry.get("air_date"),
                )
            )
        return episodes


def _trailer_url(payload: Mapping[str, Any]) -> Optional[str]:
    videos = (payload.get("videos") or {}).get("results") or []
    for video in videos:
        if video.get("site") == "YouTube" and video.get("type") == "Trailer" and video.get("key"):
            return f"https://www.youtube.com/watch?v={video['key']}"
    return None


def _certification(payload: Mapping[str, Any], kind: MediaKind) -> str:
    if kind is MediaKind.MOVIE:
        for entry in (payload.get("release_dates") or {}).get("results") or []:
            if entry.get("iso_3166_1") != "US":
                continue
            for release in entry.get("release_dates") or []:
                if release.get("certification"):
                    return release["certification"]
    else:
        for entry in (payload.get("content_ratings") or {}).get("results") or []:
            if entry.get("iso_3166_1") == "US" and entry.get("rating"):
                return entry["rating"]
    return "n/a"
