"""Playback session orchestration.

:class:`SessionController` is the single writer of the session record: the
loaded item, its caption tracks and torrent candidates, the show selection
and the playback session. All work runs on one event loop; every fetch
captures an epoch when it is issued and its result is dropped if the user
moved on to another item or episode in the meantime.

Two epochs are kept. ``epoch`` moves on every item or episode selection and
guards torrent candidates. ``item_epoch`` moves only on item selection and
guards item-scoped data (metadata, captions, season and episode lists), so
changing episodes does not throw away captions that are still loading.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from popstream.backend.casting.monitor import CastingDeviceMonitor
from popstream.backend.common.errors import InvalidSelection
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.base import MetadataProvider
from popstream.backend.information_handlers.models import (
    CaptionTrack,
    CastingDevice,
    EpisodeSummary,
    Item,
    MediaKind,
    SeasonSummary,
)
from popstream.backend.persistence.history import HistoryKind, WatchHistoryStore
from popstream.backend.player.backends import HTML_VIDEO_KINDS, BackendKind, PlaybackBackendAdapter
from popstream.backend.player.engine import SUPPORTED_FORMATS, TorrentEngine, TorrentStream
from popstream.backend.player.exceptions import TorrentEngineError
from popstream.backend.player.subtitles.service import SubtitleTrackResolver
from popstream.backend.session.state import (
    ActiveStream,
    PlaybackSession,
    SessionState,
    ShowSelection,
)
from popstream.backend.torrents.models import DeliveryMethod, TorrentCandidate, TorrentSet
from popstream.backend.torrents.providers.base import TorrentProvider
from popstream.backend.torrents.selector import (
    build_merged_set,
    build_single_source_set,
    is_poor_source,
)

log = get_logger(__name__)

POOR_SOURCE_ADVISORY = "Slow torrent, low seeder count"

AdvisoryListener = Callable[[str], None]
ChangeListener = Callable[["SessionController"], None]


class SessionController:
    def __init__(
        self,
        *,
        metadata: MetadataProvider,
        torrents: TorrentProvider,
        subtitles: SubtitleTrackResolver,
        engine: TorrentEngine,
        backends: PlaybackBackendAdapter,
        history: WatchHistoryStore,
        monitor: Optional[CastingDeviceMonitor] = None,
        season_complete: bool = False,
        formats: Sequence[str] = SUPPORTED_FORMATS,
        on_advisory: Optional[AdvisoryListener] = None,
    ) -> None:
        self._metadata = metadata
        self._torrents = torrents
        self._subtitles = subtitles
        self._engine = engine
        self._backends = backends
        self._history = history
        self._monitor = monitor
        self._season_complete = season_complete
        self._formats = tuple(formats)
        self._on_advisory = on_advisory
        self._listeners: List[ChangeListener] = []

        self._epoch = 0
        self._item_epoch = 0
        self._started = False
        self._closed = False
        self._stale_discards = 0

        self._state = SessionState.IDLE
        self._item = Item.empty()
        self._mode: Optional[MediaKind] = None
        self._torrent_set = TorrentSet.empty()
        self._fetching_torrents = False
        self._captions: List[CaptionTrack] = []
        self._seasons: List[SeasonSummary] = []
        self._episodes: List[EpisodeSummary] = []
        self._selection = ShowSelection()
        self._backend_kind = BackendKind.DEFAULT
        self._playback_visible = False
        self._playback: Optional[PlaybackSession] = None
        self._active: Optional[ActiveStream] = None
        self._favorites: List[Item] = []
        self._watch_list: List[Item] = []
        self._device_refresh: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Read-only view of the session record
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def item(self) -> Item:
        return self._item

    @property
    def mode(self) -> Optional[MediaKind]:
        return self._mode

    @property
    def torrents(self) -> TorrentSet:
        return self._torrent_set

    @property
    def fetching_torrents(self) -> bool:
        return self._fetching_torrents

    @property
    def captions(self) -> List[CaptionTrack]:
        return list(self._captions)

    @property
    def seasons(self) -> List[SeasonSummary]:
        return list(self._seasons)

    @property
    def episodes(self) -> List[EpisodeSummary]:
        return list(self._episodes)

    @property
    def selection(self) -> ShowSelection:
        return self._selection

    @property
    def backend_kind(self) -> BackendKind:
        return self._backend_kind

    @property
    def playback_visible(self) -> bool:
        return self._playback_visible

    @property
    def playback(self) -> Optional[PlaybackSession]:
        return self._playback

    @property
    def favorites(self) -> List[Item]:
        return list(self._favorites)

    @property
    def watch_list(self) -> List[Item]:
        return list(self._watch_list)

    @property
    def casting_devices(self) -> List[CastingDevice]:
        return self._monitor.devices if self._monitor is not None else []

    @property
    def stale_discards(self) -> int:
        return self._stale_discards

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` after every change to the session record."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._started or self._closed:
            return
        self._started = True
        self._subtitles.server.start()
        if self._monitor is not None:
            self._monitor.start()
        favorites, watch_list = await asyncio.gather(
            self._load_history(HistoryKind.FAVORITES),
            self._load_history(HistoryKind.WATCH_LIST),
        )
        self._favorites = favorites
        self._watch_list = watch_list
        self._changed()
        log.info("session_started", favorites=len(favorites), watch_list=len(watch_list))

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._next_epoch(new_item=True)
        active = self._detach()
        await self._teardown(active, active.backend_kind if active else self._backend_kind)
        if self._monitor is not None:
            refresh, self._device_refresh = self._device_refresh, None
            if refresh is not None:
                refresh.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await refresh
            await self._monitor.stop()
        self._subtitles.server.close()
        log.info("session_shutdown")

    async def __aenter__(self) -> "SessionController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    async def select_item(self, item_id: str, mode: MediaKind | str) -> None:
        kind = MediaKind.parse(mode)
        if not item_id:
            raise InvalidSelection("An item id is required")

        epoch, item_epoch = self._next_epoch(new_item=True)
        active = self._detach()
        self._item = Item.empty()
        self._mode = kind
        self._torrent_set = TorrentSet.empty()
        self._fetching_torrents = False
        self._captions = []
        self._seasons = []
        self._episodes = []
        self._selection = ShowSelection()
        self._set_state(SessionState.LOADING_ITEM)
        self._refresh_devices()
        if active is not None or self._playback_visible:
            await self._teardown(active, active.backend_kind if active else self._backend_kind)

        try:
            item = await self._metadata.get_item(item_id, kind)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            if not self._accept_item(item_epoch, "item"):
                return
            log.warning("metadata_provider_failed", item_id=item_id, kind=kind.value, error=str(exc))
            self._item = Item.empty()
            self._set_state(SessionState.IDLE)
            return
        if not self._accept_item(item_epoch, "item"):
            return

        self._item = item
        self._fetching_torrents = True
        self._set_state(SessionState.FETCHING_SOURCES)
        log.info("item_loaded", item_id=item.id, kind=kind.value, epoch=epoch)

        fetches: List[Awaitable[None]] = [
            self._load_captions(item_epoch, item),
            self._fetch_torrents(epoch, self._selection),
        ]
        if kind is MediaKind.SHOW:
            fetches.append(self._load_seasons(item_epoch, item))
            fetches.append(self._load_episodes(item_epoch, item, self._selection.season))
        await asyncio.gather(*fetches)

    async def select_show_scope(
        self,
        kind: str,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> None:
        scope = (kind or "").strip().lower()
        if scope not in ("episodes", "episode"):
            raise InvalidSelection(f"Unknown show scope '{kind}'")
        if season is None:
            raise InvalidSelection(f"Scope '{scope}' requires a season")
        if scope == "episode" and episode is None:
            raise InvalidSelection("Scope 'episode' requires an episode")
        if self._mode is not MediaKind.SHOW or self._item.is_empty:
            raise InvalidSelection("No show is loaded")

        if scope == "episodes":
            self._selection = ShowSelection(season=int(season), episode=1)
            self._episodes = []
            item = self._item
            await asyncio.gather(
                self._load_episodes(self._item_epoch, item, int(season)),
                self.select_show_scope("episode", int(season), 1),
            )
            return

        selection = ShowSelection(season=int(season), episode=int(episode))
        epoch, _ = self._next_epoch()
        active = self._detach()
        self._selection = selection
        self._torrent_set = TorrentSet.empty()
        self._fetching_torrents = True
        self._set_state(SessionState.FETCHING_SOURCES)
        if active is not None:
            await self._teardown(active, active.backend_kind)
        await self._fetch_torrents(epoch, selection)

    def select_player(self, backend_kind: BackendKind | str, device_id: Optional[str] = None) -> BackendKind:
        kind = BackendKind.parse(backend_kind)
        if kind is BackendKind.CHROMECAST:
            if self._monitor is None:
                raise InvalidSelection("Casting is not available")
            self._monitor.select_device(device_id)
        self._backend_kind = kind
        if kind in HTML_VIDEO_KINDS:
            self._playback_visible = not self._playback_visible
        self._changed()
        log.info("player_selected", backend=kind.value, device_id=device_id, visible=self._playback_visible)
        return kind

    # ------------------------------------------------------------------
    # Playback
    # ------------------------------------------------------------------
    async def start_playback(self, quality: Optional[str] = None) -> bool:
        try:
            candidate = self._torrent_set.candidate_for(quality)
        except ValueError as exc:
            raise InvalidSelection(f"Unknown quality '{quality}'") from exc
        if not candidate.is_playable:
            log.info("playback_skipped", reason="no_source", quality=quality)
            return False

        previous = self._detach()
        if previous is not None:
            await self._teardown(previous, previous.backend_kind)

        kind = self._backend_kind
        stream = TorrentStream(self._engine, candidate.magnet or "", self._engine_metadata(candidate), self._formats)
        active = ActiveStream(backend_kind=kind, stream=stream)
        self._active = active
        self._playback = PlaybackSession(backend_kind=kind)
        self._set_state(SessionState.STARTING)

        try:
            await stream.open()
        except TorrentEngineError as exc:
            if self._active is not active:
                return False
            log.warning("torrent_engine_failed", item_id=self._item.id, error=str(exc))
            self._detach()
            await self._teardown(active, kind)
            self._set_state(SessionState.READY)
            return False
        if self._active is not active:
            await stream.close()
            return False

        active.task = asyncio.create_task(self._serve(active), name="torrent_stream")
        log.info("playback_starting", item_id=self._item.id, backend=kind.value, quality=candidate.quality)
        return True

    async def wait_until_serving(self, timeout: Optional[float] = None) -> bool:
        """Wait until the current session has been handed to its backend."""

        active = self._active
        if active is None:
            return False
        try:
            await asyncio.wait_for(active.served.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self._active is active

    async def stop_playback(self) -> bool:
        active = self._active
        if active is None and not self._playback_visible:
            return False
        self._set_state(SessionState.STOPPING)
        self._detach()
        await self._teardown(active, active.backend_kind if active else self._backend_kind)
        if self._item.is_empty:
            self._set_state(SessionState.IDLE)
        elif self._fetching_torrents:
            self._set_state(SessionState.FETCHING_SOURCES)
        else:
            self._set_state(SessionState.READY)
        return True

    async def close_video(self) -> bool:
        if not self._playback_visible:
            return False
        await self.stop_playback()
        self._playback_visible = False
        self._backend_kind = BackendKind.DEFAULT
        self._changed()
        return True

    # ------------------------------------------------------------------
    # Internals: epochs
    # ------------------------------------------------------------------
    def _next_epoch(self, *, new_item: bool = False) -> tuple[int, int]:
        self._epoch += 1
        if new_item:
            self._item_epoch += 1
        return self._epoch, self._item_epoch

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch and not self._closed

    def _accept(self, epoch: int, result: str) -> bool:
        if self._is_current(epoch):
            return True
        self._discard(result, epoch, self._epoch)
        return False

    def _accept_item(self, item_epoch: int, result: str) -> bool:
        if item_epoch == self._item_epoch and not self._closed:
            return True
        self._discard(result, item_epoch, self._item_epoch)
        return False

    def _discard(self, result: str, issued: int, current: int) -> None:
        self._stale_discards += 1
        log.info("stale_result_discarded", result=result, issued_epoch=issued, current_epoch=current)

    # ------------------------------------------------------------------
    # Internals: fetches
    # ------------------------------------------------------------------
    async def _load_captions(self, item_epoch: int, item: Item) -> None:
        tracks = await self._subtitles.resolve(item.imdb_id or item.id)
        if not self._accept_item(item_epoch, "captions"):
            return
        self._captions = list(tracks)
        self._changed()

    async def _load_seasons(self, item_epoch: int, item: Item) -> None:
        seasons = await self._guarded_fetch(self._metadata.get_seasons(_metadata_id(item)), "seasons", item.id)
        if not self._accept_item(item_epoch, "seasons"):
            return
        self._seasons = list(seasons or [])
        self._changed()

    async def _load_episodes(self, item_epoch: int, item: Item, season: int) -> None:
        episodes = await self._guarded_fetch(
            self._metadata.get_season_episodes(_metadata_id(item), season), "episodes", item.id
        )
        if not self._accept_item(item_epoch, "episodes"):
            return
        if self._selection.season != season:
            return
        self._episodes = list(episodes or [])
        self._changed()

    async def _guarded_fetch(self, fetch: Awaitable[Any], what: str, item_id: str) -> Any:
        try:
            return await fetch
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("metadata_provider_failed", result=what, item_id=item_id, error=str(exc))
            return None

    async def _fetch_torrents(self, epoch: int, selection: ShowSelection) -> None:
        item, mode = self._item, self._mode
        try:
            torrent_set = await self._query_torrents(item, mode, selection)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("torrent_provider_failed", item_id=item.id, error=str(exc))
            torrent_set = TorrentSet.empty()
        if not self._accept(epoch, "torrents"):
            return

        self._torrent_set = torrent_set
        self._fetching_torrents = False
        if self._state is SessionState.FETCHING_SOURCES:
            self._set_state(SessionState.READY)
        else:
            self._changed()
        log.info(
            "torrents_resolved",
            item_id=item.id,
            epoch=epoch,
            ideal_quality=torrent_set.ideal.quality,
            ideal_health=torrent_set.ideal.health,
        )
        if is_poor_source(torrent_set):
            self._advise(POOR_SOURCE_ADVISORY, item.id)

    async def _query_torrents(
        self,
        item: Item,
        mode: Optional[MediaKind],
        selection: ShowSelection,
    ) -> TorrentSet:
        item_id = item.imdb_id or item.id
        if mode is MediaKind.MOVIE:
            results = await self._torrents.query(item_id, DeliveryMethod.MOVIES, search_query=item.title)
            return build_single_source_set(results)

        episode_query = self._torrents.query(
            item_id,
            DeliveryMethod.SHOWS,
            season=selection.season,
            episode=selection.episode,
            search_query=item.title,
        )
        if not self._season_complete:
            return build_single_source_set(await episode_query)

        episode_results, season_results = await asyncio.gather(
            episode_query,
            self._torrents.query(
                item_id,
                DeliveryMethod.SEASON_COMPLETE,
                season=selection.season,
                search_query=item.title,
            ),
        )
        return build_merged_set(episode_results, season_results)

    async def _load_history(self, kind: HistoryKind) -> List[Item]:
        try:
            return list(await self._history.get(kind))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("history_load_failed", kind=kind.value, error=str(exc))
            return []

    def _advise(self, message: str, item_id: str) -> None:
        log.warning("poor_source_advisory", item_id=item_id, message=message)
        if self._on_advisory is not None:
            self._on_advisory(message)

    # ------------------------------------------------------------------
    # Internals: playback session
    # ------------------------------------------------------------------
    def _engine_metadata(self, candidate: TorrentCandidate) -> dict:
        metadata = {
            "item_id": self._item.id,
            "title": self._item.title,
            "method": candidate.method.value if candidate.method else None,
            "quality": candidate.quality.value if candidate.quality else None,
        }
        if self._mode is MediaKind.SHOW:
            metadata["season"] = self._selection.season
            metadata["episode"] = self._selection.episode
        return metadata

    async def _serve(self, active: ActiveStream) -> None:
        try:
            info = await active.stream.wait_ready()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("torrent_engine_failed", item_id=self._item.id, error=str(exc))
            return
        if self._active is not active or self._playback is None:
            return

        self._playback.serving_url = info.url
        if active.backend_kind in HTML_VIDEO_KINDS:
            self._playback_visible = True
        self._set_state(SessionState.SERVING)
        log.info("torrent_serving", item_id=self._item.id, url=info.url, torrent_hash=info.torrent_hash)

        item, captions = self._item, list(self._captions)
        await self._quietly(self._backends.start(active.backend_kind, info.url, item, captions), "backend_start_failed")
        if self._active is not active:
            return
        await self._remember_watched(item)
        active.served.set()

        async for fraction in active.stream.progress():
            if self._active is not active or self._playback is None:
                return
            self._playback.progress = fraction
            self._changed()

    async def _remember_watched(self, item: Item) -> None:
        try:
            watched = await self._history.get(HistoryKind.RECENTLY_WATCHED)
            if any(entry.id == item.id for entry in watched):
                return
            await self._history.set(HistoryKind.RECENTLY_WATCHED, item)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("history_update_failed", item_id=item.id, error=str(exc))

    def _refresh_devices(self) -> None:
        """Re-poll cast devices once when the item changes; the polling cycle is untouched."""

        if self._monitor is None or self._closed:
            return
        if self._device_refresh is not None and not self._device_refresh.done():
            return
        self._device_refresh = asyncio.get_running_loop().create_task(
            self._monitor.refresh(), name="casting_device_refresh"
        )

    def _detach(self) -> Optional[ActiveStream]:
        active, self._active = self._active, None
        self._playback = None
        return active

    async def _teardown(self, active: Optional[ActiveStream], kind: BackendKind) -> None:
        """Pause, cancel the stream task, then release engine handle and backend."""

        if kind in HTML_VIDEO_KINDS:
            await self._quietly(self._backends.pause(), "backend_pause_failed")
        if active is not None:
            task = active.task
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            await active.stream.close()
        await self._quietly(self._backends.destroy(), "backend_destroy_failed")
        log.debug("playback_torn_down", backend=kind.value)

    async def _quietly(self, action: Awaitable[None], event: str) -> None:
        try:
            await action
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning(event, error=str(exc))

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            log.debug("session_state", previous=self._state.value, state=state.value, epoch=self._epoch)
        self._state = state
        self._changed()

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def _metadata_id(item: Item) -> str:
    return item.tmdb_id or item.id
