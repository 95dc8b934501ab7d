"""Cast device discovery and control.

:class:`CastingDiscovery` is the contract the session consumes;
:class:`ChromecastDiscovery` implements it with pychromecast. The blocking
pychromecast calls run in worker threads.
"""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from popstream.backend.common.errors import ProviderError
from popstream.backend.common.logging import get_logger
from popstream.backend.information_handlers.models import CastingDevice

log = get_logger(__name__)


class CastError(ProviderError):
    """Base exception for casting errors."""


class DeviceNotFoundError(CastError):
    """The selected device is not among the discovered devices."""


class CastingDiscovery(ABC):
    @abstractmethod
    async def get_devices(self) -> List[CastingDevice]:
        raise NotImplementedError

    @abstractmethod
    def select_device(self, device_id: Optional[str]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def cast(self, url: str, title: str, *, subtitles_url: Optional[str] = None) -> None:
        raise NotImplementedError

    async def pause(self) -> None:
        return None

    async def stop(self) -> None:
        return None


class ChromecastDiscovery(CastingDiscovery):
    def __init__(self, *, timeout: float = 5.0, content_type: str = "video/mp4") -> None:
        try:
            import pychromecast  # type: ignore
        except ImportError as exc:
            raise CastError(f"pychromecast import failed: {exc}") from exc
        self._pychromecast = pychromecast
        self._timeout = timeout
        self._content_type = content_type
        self._lock = threading.Lock()
        self._casts: Dict[str, Any] = {}
        self._selected_id: Optional[str] = None
        self._active_cast: Any = None

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    async def get_devices(self) -> List[CastingDevice]:
        return await asyncio.to_thread(self._discover)

    def _discover(self) -> List[CastingDevice]:
        casts, browser = self._pychromecast.get_chromecasts(timeout=self._timeout)
        try:
            browser.stop_discovery()
        except Exception as exc:  # noqa: BLE001
            log.debug("chromecast_browser_stop_failed", error=str(exc))
        found: Dict[str, Any] = {}
        devices: List[CastingDevice] = []
        for cast in casts:
            info = getattr(cast, "cast_info", None)
            uuid = getattr(info, "uuid", None) or getattr(cast, "uuid", None)
            name = getattr(info, "friendly_name", None) or getattr(cast, "name", None) or "Chromecast"
            if uuid is None:
                continue
            device_id = str(uuid)
            found[device_id] = cast
            devices.append(CastingDevice(id=device_id, name=str(name)))
        with self._lock:
            self._casts = found
        return devices

    def select_device(self, device_id: Optional[str]) -> None:
        with self._lock:
            self._selected_id = device_id
        log.info("cast_device_selected", device_id=device_id)

    async def cast(self, url: str, title: str, *, subtitles_url: Optional[str] = None) -> None:
        await asyncio.to_thread(self._cast, url, title, subtitles_url)

    def _cast(self, url: str, title: str, subtitles_url: Optional[str]) -> None:
        with self._lock:
            device_id = self._selected_id
            cast = self._casts.get(device_id) if device_id else None
        if cast is None:
            raise DeviceNotFoundError(f"Cast device '{device_id}' not found")
        cast.wait(timeout=self._timeout)
        controller = cast.media_controller
        kwargs: Dict[str, Any] = {"title": title}
        if subtitles_url:
            kwargs.update(subtitles=subtitles_url, subtitles_mime="text/vtt")
        controller.play_media(url, self._content_type, **kwargs)
        controller.block_until_active(timeout=self._timeout)
        self._active_cast = cast
        log.info("cast_started", device_id=device_id, title=title)

    async def pause(self) -> None:
        cast = self._active_cast
        if cast is not None:
            await asyncio.to_thread(cast.media_controller.pause)

    async def stop(self) -> None:
        cast, self._active_cast = self._active_cast, None
        if cast is not None:
            await asyncio.to_thread(self._release, cast)

    def _release(self, cast: Any) -> None:
        """Stop the receiver app and close the socket pychromecast keeps open."""

        try:
            cast.media_controller.stop()
        except Exception as exc:  # noqa: BLE001
            log.warning("cast_stop_failed", error=str(exc))
        try:
            cast.disconnect()
        except Exception as exc:  # noqa: BLE001
            log.warning("cast_disconnect_failed", error=str(exc))
        log.info("cast_stopped")
