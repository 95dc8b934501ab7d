from __future__ import annotations

"""Resolves subtitle descriptors into locally served caption tracks."""

from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from popstream.backend.common.logging import get_logger
from popstream.backend.common.tasks import TaskSpec, run_task
from popstream.backend.information_handlers.models import CaptionTrack
from popstream.backend.player.subtitles.models import SubtitleDescriptor
from popstream.backend.player.subtitles.providers.base import SubtitleProvider

log = get_logger(__name__)


class SubtitleServer(Protocol):
    directory: Path

    def start(self) -> None: ...

    def close(self) -> None: ...

    def url_for(self, file_name: str) -> str: ...


class SubtitleTrackResolver:
    """Fetches subtitles for an item and maps them to caption tracks.

    ``resolve`` never raises: any provider or serving failure yields an
    empty track list so playback can continue without captions.
    """

    def __init__(
        self,
        provider: SubtitleProvider,
        server: SubtitleServer,
        *,
        preferred_language: str = "en",
        languages: Optional[Sequence[str]] = None,
    ) -> None:
        self._provider = provider
        self._server = server
        self._preferred_language = preferred_language
        self._languages = list(languages) if languages else [preferred_language]

    @property
    def server(self) -> SubtitleServer:
        return self._server

    async def resolve(self, external_id: str) -> List[CaptionTrack]:
        if not external_id:
            return []
        try:
            descriptors = await run_task(
                TaskSpec(
                    fn=self._provider.fetch,
                    args=(external_id,),
                    kwargs={"path": Path(self._server.directory), "languages": self._languages},
                    retries=self._provider.retries,
                    backoff_sec=self._provider.backoff_sec,
                    name=f"subtitle_fetch_{self._provider.name}",
                )
            )
            tracks = self._to_tracks(descriptors or [])
        except Exception as exc:  # noqa: BLE001
            log.warning(
                "subtitle_provider_failed",
                provider=self._provider.name,
                external_id=external_id,
                error=str(exc),
            )
            return []
        log.info("subtitles_resolved", external_id=external_id, count=len(tracks))
        return tracks

    def _to_tracks(self, descriptors: Sequence[SubtitleDescriptor]) -> List[CaptionTrack]:
        tracks: List[CaptionTrack] = []
        default_taken = False
        for descriptor in descriptors:
            is_default = not default_taken and descriptor.language == self._preferred_language
            default_taken = default_taken or is_default
            tracks.append(
                CaptionTrack(
                    language=descriptor.language,
                    label=descriptor.language,
                    url=self._server.url_for(descriptor.file_name),
                    is_default=is_default,
                )
            )
        return tracks
