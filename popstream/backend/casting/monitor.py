"""Periodic cast-device discovery scoped to a controller's lifetime."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Sequence

from popstream.backend.casting.discovery import CastingDiscovery
from popstream.backend.common.logging import get_logger
from popstream.backend.common.tasks import PeriodicTask
from popstream.backend.information_handlers.models import CastingDevice

log = get_logger(__name__)

DevicesListener = Callable[[Sequence[CastingDevice]], None]


class CastingDeviceMonitor:
    """Keeps a live device list fresh by polling discovery.

    ``start`` launches the poll loop once and ``stop`` cancels it once; a
    stopped monitor never polls again. A failed poll keeps the last list.
    """

    def __init__(
        self,
        discovery: CastingDiscovery,
        *,
        interval: float = 10.0,
        on_devices: Optional[DevicesListener] = None,
    ) -> None:
        self._discovery = discovery
        self._on_devices = on_devices
        self._devices: List[CastingDevice] = []
        self._stopped = False
        self._task = PeriodicTask(self._tick, interval, name="casting_device_poll")

    @property
    def devices(self) -> List[CastingDevice]:
        return list(self._devices)

    @property
    def running(self) -> bool:
        return self._task.running

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> bool:
        if self._stopped:
            return False
        return self._task.start()

    async def stop(self) -> bool:
        if self._stopped:
            return False
        self._stopped = True
        await self._task.cancel()
        log.info("casting_monitor_stopped")
        return True

    async def refresh(self) -> List[CastingDevice]:
        """Run one discovery pass outside the polling cycle."""

        await self._tick()
        return self.devices

    def select_device(self, device_id: Optional[str]) -> None:
        self._discovery.select_device(device_id)

    async def _tick(self) -> None:
        if self._stopped:
            return
        log.debug("casting_devices_poll")
        try:
            devices = await self._discovery.get_devices()
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("casting_discovery_failed", error=str(exc))
            return
        if self._stopped:
            return
        self._devices = list(devices or [])
        if self._on_devices is not None:
            self._on_devices(self.devices)
