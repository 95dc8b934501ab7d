"""Wires a :class:`SessionController` from application settings."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from popstream.backend.casting.discovery import CastError, CastingDiscovery, ChromecastDiscovery
from popstream.backend.casting.monitor import CastingDeviceMonitor
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.models import CastingDevice
from popstream.backend.information_handlers.tmdb import TmdbMetadataProvider
from popstream.backend.persistence.history import SqliteWatchHistoryStore
from popstream.backend.player.backends import PlaybackBackendAdapter, VideoSurface, default_factories
from popstream.backend.player.engine import TorrentEngine
from popstream.backend.player.subtitles.providers.opensubtitles import OpenSubtitlesProvider
from popstream.backend.player.subtitles.server import LocalSubtitleServer
from popstream.backend.player.subtitles.service import SubtitleTrackResolver
from popstream.backend.session.controller import AdvisoryListener, SessionController
from popstream.backend.torrents.providers import (
    EztvTorrentProvider,
    RoutingTorrentProvider,
    YtsTorrentProvider,
)
from popstream.config.settings import Settings, get_settings

log = get_logger(__name__)


def build_discovery(settings: Settings) -> Optional[CastingDiscovery]:
    try:
        return ChromecastDiscovery()
    except CastError as exc:
        log.warning("casting_unavailable", app=settings.app_name, error=str(exc))
        return None


def build_controller(
    engine: TorrentEngine,
    *,
    surface: Optional[VideoSurface] = None,
    settings: Optional[Settings] = None,
    discovery: Optional[CastingDiscovery] = None,
    on_advisory: Optional[AdvisoryListener] = None,
    on_devices: Optional[Callable[[Sequence[CastingDevice]], None]] = None,
) -> SessionController:
    """Build a controller backed by TMDb, YTS, EZTV, OpenSubtitles and SQLite.

    The torrent engine and the in-app video surface belong to the host
    application and are always supplied by the caller. Casting is disabled
    when pychromecast is unavailable.
    """

    settings = settings or get_settings()
    discovery = discovery or build_discovery(settings)

    resolver = SubtitleTrackResolver(
        OpenSubtitlesProvider.from_settings(),
        LocalSubtitleServer(settings.subtitle_dir, port=settings.subtitle_server_port),
        preferred_language=settings.default_subtitle_language,
        languages=settings.subtitle_languages,
    )
    monitor = None
    if discovery is not None:
        monitor = CastingDeviceMonitor(
            discovery,
            interval=settings.casting_poll_interval,
            on_devices=on_devices,
        )
    backends = PlaybackBackendAdapter(
        default_factories(
            surface=surface,
            discovery=discovery,
            html_start_delay=settings.html_start_delay,
        )
    )
    log.debug(
        "session_controller_built",
        season_complete=settings.season_complete,
        casting=discovery is not None,
        backends=sorted(kind.value for kind in backends.kinds),
    )
    return SessionController(
        metadata=TmdbMetadataProvider(),
        torrents=RoutingTorrentProvider([YtsTorrentProvider(), EztvTorrentProvider()]),
        subtitles=resolver,
        engine=engine,
        backends=backends,
        history=SqliteWatchHistoryStore(settings.database_path),
        monitor=monitor,
        season_complete=settings.season_complete,
        on_advisory=on_advisory,
    )
