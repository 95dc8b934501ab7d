from __future__ import annotations

"""Playback backends behind one start/pause/destroy contract."""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Sequence

from popstream.backend.casting.discovery import CastingDiscovery
from popstream.backend.common.errors import BackendDispatchError, InvalidSelection
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.models import CaptionTrack, Item
from popstream.backend.player.exceptions import PlayerError
from popstream.backend.player.vlc_paths import export_vlc_runtime, locate_vlc_runtime

log = get_logger(__name__)


class BackendKind(str, Enum):
    DEFAULT = "default"
    PLYR = "plyr"
    VLC = "vlc"
    CHROMECAST = "chromecast"
    YOUTUBE = "youtube"

    @classmethod
    def parse(cls, value: "BackendKind | str") -> "BackendKind":
        if isinstance(value, BackendKind):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError as exc:
            raise InvalidSelection(f"Unknown playback backend '{value}'") from exc


# Backends the session pauses explicitly before teardown and that toggle the
# in-app video surface.
HTML_VIDEO_KINDS = frozenset({BackendKind.DEFAULT, BackendKind.YOUTUBE})


class PlaybackBackend(ABC):
    kind: BackendKind

    @abstractmethod
    async def start(self, serving_url: str, item: Item, captions: Sequence[CaptionTrack]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def pause(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def destroy(self) -> None:
        """Release resources; safe on a destroyed or never-started backend."""
        raise NotImplementedError


class VideoSurface(Protocol):
    """The in-app video element an HTML video backend drives."""

    def update_source(self, url: str, title: str, captions: Sequence[CaptionTrack]) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def clear(self) -> None: ...


class HtmlVideoBackend(PlaybackBackend):
    """Embedded HTML5 video (default, plyr and youtube surfaces)."""

    def __init__(self, kind: BackendKind, surface: VideoSurface, *, start_delay: float = 0.0) -> None:
        self.kind = kind
        self._surface = surface
        self._start_delay = start_delay if kind in HTML_VIDEO_KINDS else 0.0
        self._started = False
        self._destroyed = False

    async def start(self, serving_url: str, item: Item, captions: Sequence[CaptionTrack]) -> None:
        if self._destroyed:
            raise PlayerError(f"{self.kind.value} backend already destroyed")
        if self._start_delay:
            # the surface needs a moment to mount before it accepts a source
            await asyncio.sleep(self._start_delay)
        self._surface.update_source(serving_url, item.title, list(captions))
        self._surface.play()
        self._started = True

    async def pause(self) -> None:
        if self._started and not self._destroyed:
            self._surface.pause()

    async def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        if self._started:
            self._surface.clear()


class VlcBackend(PlaybackBackend):
    """Native VLC player window driven through python-vlc."""

    kind = BackendKind.VLC

    def __init__(self, vlc_root: Optional[str] = None) -> None:
        runtime = locate_vlc_runtime(vlc_root)
        if runtime is None:
            log.debug("vlc_runtime_not_configured", hint="Using system VLC installation")
        else:
            export_vlc_runtime(runtime)
        try:
            import vlc  # type: ignore
        except Exception as exc:  # noqa: BLE001
            raise PlayerError(f"python-vlc import failed: {exc}") from exc
        self._vlc = vlc
        self._instance: Any = None
        self._player: Any = None

    async def start(self, serving_url: str, item: Item, captions: Sequence[CaptionTrack]) -> None:
        await asyncio.to_thread(self._start, serving_url, item, list(captions))

    def _start(self, serving_url: str, item: Item, captions: Sequence[CaptionTrack]) -> None:
        self._instance = self._vlc.Instance()
        self._player = self._instance.media_player_new()
        media = self._instance.media_new(serving_url)
        media.set_meta(self._vlc.Meta.Title, item.title)
        self._player.set_media(media)
        default = next((c for c in captions if c.is_default), None)
        if default is not None:
            self._player.add_slave(self._vlc.MediaSlaveType.subtitle, default.url, True)
        if self._player.play() == -1:
            raise PlayerError(f"VLC refused to play {serving_url}")
        log.info("vlc_playback_started", url=serving_url, title=item.title)

    async def pause(self) -> None:
        if self._player is not None:
            await asyncio.to_thread(self._player.set_pause, 1)

    async def destroy(self) -> None:
        player, self._player = self._player, None
        instance, self._instance = self._instance, None
        if player is not None:
            await asyncio.to_thread(self._release, player, instance)

    @staticmethod
    def _release(player: Any, instance: Any) -> None:
        player.stop()
        player.release()
        if instance is not None:
            instance.release()


class CastBackend(PlaybackBackend):
    kind = BackendKind.CHROMECAST

    def __init__(self, discovery: CastingDiscovery) -> None:
        self._discovery = discovery
        self._started = False

    async def start(self, serving_url: str, item: Item, captions: Sequence[CaptionTrack]) -> None:
        default = next((c for c in captions if c.is_default), None)
        await self._discovery.cast(serving_url, item.title, subtitles_url=default.url if default else None)
        self._started = True

    async def pause(self) -> None:
        if self._started:
            await self._discovery.pause()

    async def destroy(self) -> None:
        if not self._started:
            return
        self._started = False
        await self._discovery.stop()


BackendFactory = Callable[[], PlaybackBackend]


def default_factories(
    *,
    surface: Optional[VideoSurface] = None,
    discovery: Optional[CastingDiscovery] = None,
    html_start_delay: float = 3.0,
    vlc_root: Optional[str] = None,
) -> Dict[BackendKind, BackendFactory]:
    factories: Dict[BackendKind, BackendFactory] = {
        BackendKind.VLC: lambda: VlcBackend(vlc_root),
    }
    if surface is not None:
        for kind in (BackendKind.DEFAULT, BackendKind.PLYR, BackendKind.YOUTUBE):
            factories[kind] = lambda kind=kind: HtmlVideoBackend(kind, surface, start_delay=html_start_delay)
    if discovery is not None:
        factories[BackendKind.CHROMECAST] = lambda: CastBackend(discovery)
    return factories


class PlaybackBackendAdapter:
    """Owns at most one live backend and dispatches by :class:`BackendKind`."""

    def __init__(self, factories: Mapping[BackendKind, BackendFactory]) -> None:
        self._factories = dict(factories)
        self._current: Optional[PlaybackBackend] = None

    @property
    def current(self) -> Optional[PlaybackBackend]:
        return self._current

    @property
    def kinds(self) -> tuple[BackendKind, ...]:
        return tuple(self._factories)

    def supports(self, kind: BackendKind | str) -> bool:
        try:
            return BackendKind.parse(kind) in self._factories
        except InvalidSelection:
            return False

    async def start(
        self,
        kind: BackendKind | str,
        serving_url: str,
        item: Item,
        captions: Sequence[CaptionTrack],
    ) -> bool:
        try:
            backend = self._build(kind)
        except (InvalidSelection, BackendDispatchError, PlayerError) as exc:
            log.error("backend_dispatch_failed", backend=str(kind), error=str(exc))
            return False
        await self.destroy()
        self._current = backend
        await backend.start(serving_url, item, captions)
        log.info("backend_started", backend=backend.kind.value, url=serving_url)
        return True

    def _build(self, kind: BackendKind | str) -> PlaybackBackend:
        parsed = BackendKind.parse(kind)
        factory = self._factories.get(parsed)
        if factory is None:
            raise BackendDispatchError(f"No backend registered for '{parsed.value}'")
        return factory()

    async def pause(self) -> None:
        if self._current is not None:
            await self._current.pause()

    async def destroy(self) -> None:
        backend, self._current = self._current, None
        if backend is not None:
            await backend.destroy()
