from __future__ import annotations

"""Integration with the OpenSubtitles v1 API."""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from popstream.backend.common.logging import get_logger
from popstream.backend.player.exceptions import SubtitleError, SubtitleProviderUnavailable
from popstream.backend.player.subtitles.models import SubtitleDescriptor
from popstream.backend.player.subtitles.providers.base import (
    SubtitleProvider,
    ensure_api_key,
    write_subtitle_payload,
)
from popstream.config import settings

log = get_logger(__name__)

_API_URL = "https://api.opensubtitles.com/api/v1"


@dataclass(slots=True)
class OpenSubtitlesConfig:
    api_key: Optional[str]
    base_url: str = _API_URL
    user_agent: str = "popstream"
    timeout: int = 10
    download_timeout: int = 20

    @classmethod
    def from_settings(cls) -> "OpenSubtitlesConfig":
        cfg = settings.get_service_config("opensubtitles") or {}
        return cls(
            api_key=cfg.get("api_key") or None,
            base_url=cfg.get("base_url") or _API_URL,
            user_agent=cfg.get("user_agent") or "popstream",
        )


def _numeric_imdb_id(external_id: str) -> str:
    value = external_id.strip().lower()
    if value.startswith("tt"):
        value = value[2:]
    return value.lstrip("0") or "0"


class OpenSubtitlesProvider(SubtitleProvider):
    name = "opensubtitles"

    def __init__(
        self,
        config: Optional[OpenSubtitlesConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or OpenSubtitlesConfig(api_key=None)
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:  # type: ignore[override]
        return bool(self.config.api_key)

    @classmethod
    def from_settings(cls) -> "OpenSubtitlesProvider":
        return cls(config=OpenSubtitlesConfig.from_settings())

    def _headers(self) -> Dict[str, str]:
        api_key = ensure_api_key("OpenSubtitles", self.config.api_key)
        return {
            "Api-Key": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    async def fetch(  # type: ignore[override]
        self,
        external_id: str,
        *,
        path: Path,
        languages: Sequence[str],
    ) -> List[SubtitleDescriptor]:
        return await asyncio.to_thread(self.fetch_sync, external_id, path=path, languages=languages)

    def fetch_sync(
        self,
        external_id: str,
        *,
        path: Path,
        languages: Sequence[str],
    ) -> List[SubtitleDescriptor]:
        best = self._search(external_id, languages)
        descriptors: List[SubtitleDescriptor] = []
        for language, attributes in best.items():
            files = attributes.get("files") or []
            if not files:
                continue
            file_id = files[0].get("file_id")
            if file_id is None:
                continue
            try:
                target = self._download(file_id, path, f"{_numeric_imdb_id(external_id)}-{language}.srt")
            except (requests.RequestException, SubtitleError) as exc:
                log.warning("subtitle_download_failed", provider=self.name, language=language, error=str(exc))
                continue
            descriptors.append(
                SubtitleDescriptor(
                    language=language,
                    file_name=target.name,
                    provider=self.name,
                    downloads=int(attributes.get("download_count") or 0),
                    release=attributes.get("release") or "",
                )
            )
        return descriptors

    def _search(self, external_id: str, languages: Sequence[str]) -> Dict[str, Mapping[str, Any]]:
        params: Dict[str, object] = {
            "imdb_id": _numeric_imdb_id(external_id),
            "languages": ",".join(sorted(set(languages))),
            "order_by": "download_count",
        }
        response = self._session.get(
            f"{self.config.base_url}/subtitles",
            headers=self._headers(),
            params=params,
            timeout=self.config.timeout,
        )
        if response.status_code == 401:
            raise SubtitleProviderUnavailable("OpenSubtitles authentication failed")
        response.raise_for_status()
        best: Dict[str, Mapping[str, Any]] = {}
        for item in response.json().get("data", []):
            attributes = item.get("attributes", {}) or {}
            language = (attributes.get("language") or "").lower()
            if not language:
                continue
            current = best.get(language)
            if current is None or (attributes.get("download_count") or 0) > (current.get("download_count") or 0):
                best[language] = attributes
        # Keep the caller's language ordering so track order is stable.
        ordered = [lang for lang in languages if lang in best]
        return {lang: best[lang] for lang in ordered}

    def _download(self, file_id: Any, dest_dir: Path, fallback_name: str) -> Path:
        response = self._session.post(
            f"{self.config.base_url}/download",
            headers=self._headers(),
            json={"file_id": file_id, "sub_format": "webvtt"},
            timeout=self.config.timeout,
        )
        if response.status_code == 401:
            raise SubtitleProviderUnavailable("OpenSubtitles download unauthorized")
        response.raise_for_status()
        payload = response.json()
        link = payload.get("link")
        if not link:
            raise SubtitleError("OpenSubtitles did not return a download link")
        file_name = payload.get("file_name") or fallback_name
        content = self._session.get(link, timeout=self.config.download_timeout)
        content.raise_for_status()
        return write_subtitle_payload(dest_dir, file_name, content.content)
