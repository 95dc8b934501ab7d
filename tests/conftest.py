"""Shared fixtures for popstream tests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import pytest

from fakes import (
    BackendRecorder,
    FakeBackend,
    FakeDiscovery,
    FakeEngine,
    FakeHistory,
    FakeMetadata,
    FakeSubtitleProvider,
    FakeSubtitleServer,
    FakeTorrentProvider,
)
from popstream.backend.casting.monitor import CastingDeviceMonitor
from popstream.backend.information_handlers.models import CastingDevice, Item
from popstream.backend.player.backends import BackendKind, PlaybackBackendAdapter
from popstream.backend.player.subtitles.service import SubtitleTrackResolver
from popstream.backend.session.controller import SessionController
from popstream.config.settings import core, paths


@dataclass
class Harness:
    controller: SessionController
    metadata: FakeMetadata
    torrents: FakeTorrentProvider
    subtitles: FakeSubtitleProvider
    server: FakeSubtitleServer
    engine: FakeEngine
    backends: BackendRecorder
    adapter: PlaybackBackendAdapter
    discovery: FakeDiscovery
    monitor: CastingDeviceMonitor
    history: FakeHistory
    advisories: List[str]


@pytest.fixture
def build_harness(tmp_path):
    def _build(*, items: Sequence[Item] = (), season_complete: bool = False, descriptors=()) -> Harness:
        metadata = FakeMetadata(items)
        torrents = FakeTorrentProvider()
        subtitles = FakeSubtitleProvider(descriptors)
        server = FakeSubtitleServer(tmp_path)
        engine = FakeEngine()
        recorder = BackendRecorder()
        adapter = PlaybackBackendAdapter(
            {kind: (lambda kind=kind: FakeBackend(kind, recorder)) for kind in BackendKind}
        )
        discovery = FakeDiscovery([CastingDevice(id="cc-1", name="Living Room")])
        monitor = CastingDeviceMonitor(discovery, interval=60.0)
        history = FakeHistory()
        advisories: List[str] = []
        controller = SessionController(
            metadata=metadata,
            torrents=torrents,
            subtitles=SubtitleTrackResolver(subtitles, server, preferred_language="en", languages=["en", "es"]),
            engine=engine,
            backends=adapter,
            history=history,
            monitor=monitor,
            season_complete=season_complete,
            on_advisory=advisories.append,
        )
        return Harness(
            controller=controller,
            metadata=metadata,
            torrents=torrents,
            subtitles=subtitles,
            server=server,
            engine=engine,
            backends=recorder,
            adapter=adapter,
            discovery=discovery,
            monitor=monitor,
            history=history,
            advisories=advisories,
        )

    return _build


_SETTINGS_ENV = (
    "POPSTREAM_APP_NAME",
    "POPSTREAM_ENV",
    "POPSTREAM_LOG_LEVEL",
    "POPSTREAM_SEASON_COMPLETE",
    "POPSTREAM_MANUAL_QUALITY",
    "POPSTREAM_SUBTITLE_LANG",
    "POPSTREAM_SUBTITLE_LANGUAGES",
    "POPSTREAM_CASTING_POLL_INTERVAL",
    "POPSTREAM_HTML_START_DELAY",
    "POPSTREAM_SUBTITLE_PORT",
    "FLAG_SEASON_COMPLETE",
    "FLAG_MANUAL_TORRENT_SELECTION",
    "DEFAULT_TORRENT_LANG",
)


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Point user settings, database and subtitle paths at ``tmp_path``."""

    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setitem(paths.PATHS, "user_settings", str(tmp_path / "user_settings.json"))
    monkeypatch.setitem(paths.PATHS, "database", str(tmp_path / "popstream.db"))
    monkeypatch.setitem(paths.PATHS, "subtitle_dir", str(tmp_path / "subtitles"))
    monkeypatch.setattr(core, "_SETTINGS_SINGLETON", None)
    return tmp_path
