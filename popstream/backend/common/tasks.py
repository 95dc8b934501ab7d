"""Small asyncio helpers: retried calls and a cancel-once periodic task."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from popstream.backend.common.errors import TaskError
from popstream.backend.common.logging import get_logger

log = get_logger(__name__)


@dataclass
class TaskSpec:
    fn: Callable[..., Awaitable[Any]]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    retries: int = 0
    backoff_sec: float = 0.5
    name: str = "task"


async def run_task(spec: TaskSpec) -> Any:
    """Await ``spec.fn`` retrying with exponential backoff.

    Cancellation is never retried.
    """

    attempt = 0
    while True:
        try:
            log.debug("task_start", task=spec.name, attempt=attempt)
            result = await spec.fn(*spec.args, **spec.kwargs)
            log.debug("task_done", task=spec.name, attempt=attempt)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            if attempt >= spec.retries:
                log.error("task_fail", task=spec.name, attempt=attempt, error=str(e))
                raise
            sleep_for = spec.backoff_sec * (2 ** attempt)
            log.warning("task_retry", task=spec.name, attempt=attempt, sleep_for=sleep_for, error=str(e))
            await asyncio.sleep(sleep_for)
            attempt += 1


class PeriodicTask:
    """Runs ``tick`` every ``interval`` seconds on the running loop.

    The task can be started once and cancelled once; a cancelled task
    cannot be restarted. A failing tick is logged and the loop continues.
    """

    def __init__(
        self,
        tick: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        name: str = "periodic",
        run_immediately: bool = True,
    ) -> None:
        if interval <= 0:
            raise TaskError(f"interval must be positive, got {interval}")
        self._tick = tick
        self._interval = interval
        self._name = name
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> bool:
        if self._cancelled or self._task is not None:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self._name)
        return True

    async def cancel(self) -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        task, self._task = self._task, None
        if task is None:
            return True
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def _run(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self._interval)
        while not self._cancelled:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:  # noqa: BLE001
                log.warning("periodic_tick_failed", task=self._name, error=str(e))
            await asyncio.sleep(self._interval)
