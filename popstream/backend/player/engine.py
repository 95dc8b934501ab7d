from __future__ import annotations

"""Torrent engine contract and a cancellable stream wrapper around it."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Sequence

from popstream.backend.common.logging import get_logger
from popstream.backend.player.exceptions import TorrentEngineError

log = get_logger(__name__)

NATIVE_PLAYBACK_FORMATS: tuple[str, ...] = ("mp4", "ogg", "mov", "webmv", "mkv", "wmv", "m4v")
EXPERIMENTAL_PLAYBACK_FORMATS: tuple[str, ...] = ("avi",)
SUPPORTED_FORMATS: tuple[str, ...] = EXPERIMENTAL_PLAYBACK_FORMATS + NATIVE_PLAYBACK_FORMATS

ReadyCallback = Callable[[str, Any, Sequence[Any], str], Any]
ProgressCallback = Callable[[float], Any]


class TorrentEngine(ABC):
    """Downloads a torrent and serves the selected file over HTTP.

    ``on_ready(serving_url, file, files, torrent_hash)`` fires once the file
    is being served; ``on_progress(fraction)`` fires as data arrives. Either
    may be invoked from a foreign thread.
    """

    @abstractmethod
    async def start(
        self,
        magnet: str,
        metadata: Mapping[str, Any],
        formats: Sequence[str],
        on_ready: ReadyCallback,
        on_progress: ProgressCallback,
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def destroy(self, handle: Any) -> None:
        raise NotImplementedError


@dataclass(slots=True)
class ServingInfo:
    url: str
    file: Any = None
    files: Sequence[Any] = field(default_factory=tuple)
    torrent_hash: str = ""


class TorrentStream:
    """One engine handle exposed as a ready event plus a progress stream.

    After :meth:`close` no engine callback has any effect, even one that was
    already scheduled on the loop.
    """

    def __init__(
        self,
        engine: TorrentEngine,
        magnet: str,
        metadata: Mapping[str, Any],
        formats: Sequence[str] = SUPPORTED_FORMATS,
    ) -> None:
        self._engine = engine
        self._magnet = magnet
        self._metadata = dict(metadata)
        self._formats = tuple(formats)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready: Optional[asyncio.Future] = None
        self._progress: asyncio.Queue = asyncio.Queue()
        self._handle: Any = None
        self._active = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def handle(self) -> Any:
        return self._handle

    async def open(self) -> Any:
        if self._closed:
            raise TorrentEngineError("Stream already closed")
        self._loop = asyncio.get_running_loop()
        self._ready = self._loop.create_future()
        self._active = True
        try:
            self._handle = await self._engine.start(
                self._magnet,
                self._metadata,
                self._formats,
                self._on_ready,
                self._on_progress,
            )
        except asyncio.CancelledError:
            self._active = False
            raise
        except Exception as exc:  # noqa: BLE001
            self._active = False
            raise TorrentEngineError(f"Torrent engine failed to start: {exc}") from exc
        if self._closed:
            # closed while the engine was still starting
            handle, self._handle = self._handle, None
            await self._destroy(handle)
            raise TorrentEngineError("Stream closed before the engine started")
        return self._handle

    async def wait_ready(self) -> ServingInfo:
        if self._ready is None:
            raise TorrentEngineError("Stream not opened")
        return await self._ready

    async def progress(self) -> AsyncIterator[float]:
        while self._active:
            fraction = await self._progress.get()
            if not self._active:
                return
            yield fraction

    async def close(self) -> bool:
        """Suppress callbacks and destroy the engine handle once."""

        if self._closed:
            return False
        self._closed = True
        self._active = False
        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        # wake a pending progress() consumer
        self._progress.put_nowait(0.0)
        handle, self._handle = self._handle, None
        await self._destroy(handle)
        return True

    async def _destroy(self, handle: Any) -> None:
        if handle is None:
            return
        try:
            await self._engine.destroy(handle)
        except Exception as exc:  # noqa: BLE001
            log.warning("torrent_engine_destroy_failed", error=str(exc))

    # Engine callbacks may run on any thread; hop onto the loop and
    # re-check ``_active`` at delivery time.
    def _on_ready(self, serving_url: str, file: Any = None, files: Sequence[Any] = (), torrent_hash: str = "") -> None:
        info = ServingInfo(url=serving_url, file=file, files=tuple(files or ()), torrent_hash=torrent_hash)
        self._schedule(self._deliver_ready, info)

    def _on_progress(self, fraction: float) -> None:
        self._schedule(self._deliver_progress, float(fraction))

    def _schedule(self, fn: Callable[[Any], None], value: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed() or not self._active:
            return
        loop.call_soon_threadsafe(fn, value)

    def _deliver_ready(self, info: ServingInfo) -> None:
        if not self._active or self._ready is None or self._ready.done():
            return
        self._ready.set_result(info)

    def _deliver_progress(self, fraction: float) -> None:
        if not self._active:
            return
        self._progress.put_nowait(max(0.0, min(1.0, fraction)))
