from __future__ import annotations

import asyncio
import json
import logging

import pytest

from fakes import settle
from popstream.backend.common.errors import TaskError
from popstream.backend.common.logging import JsonFormatter, get_logger
from popstream.backend.common.tasks import PeriodicTask, TaskSpec, run_task


async def test_run_task_retries_then_succeeds():
    attempts = []

    async def flaky(value):
        attempts.append(value)
        if len(attempts) < 3:
            raise OSError("try again")
        return value * 2

    result = await run_task(TaskSpec(fn=flaky, args=(21,), retries=2, backoff_sec=0.0, name="flaky"))

    assert result == 42
    assert len(attempts) == 3


async def test_run_task_raises_after_last_retry():
    async def broken():
        raise OSError("down")

    with pytest.raises(OSError):
        await run_task(TaskSpec(fn=broken, retries=1, backoff_sec=0.0))


async def test_periodic_task_ticks_and_survives_failures():
    ticks = []

    async def tick():
        ticks.append(len(ticks))
        if len(ticks) == 1:
            raise RuntimeError("first tick fails")

    task = PeriodicTask(tick, 0.01, name="ticker")
    assert task.start()
    assert task.start() is False
    await asyncio.sleep(0.05)

    assert await task.cancel()
    assert await task.cancel() is False
    count = len(ticks)
    await asyncio.sleep(0.03)

    assert count >= 2
    assert len(ticks) == count
    assert task.cancelled and not task.running
    assert task.start() is False


async def test_periodic_task_cancel_before_start():
    async def tick():
        raise AssertionError("never runs")

    task = PeriodicTask(tick, 1.0, run_immediately=False)

    assert await task.cancel()
    assert task.start() is False
    await settle()


def test_periodic_task_rejects_non_positive_interval():
    async def tick():
        return None

    with pytest.raises(TaskError):
        PeriodicTask(tick, 0)


def test_structured_fields_reach_json_output():
    record_holder = []

    class Capture(logging.Handler):
        def emit(self, record):
            record_holder.append(record)

    base = logging.getLogger("popstream.tests.structured")
    base.propagate = False
    base.setLevel(logging.INFO)
    handler = Capture()
    base.addHandler(handler)
    try:
        get_logger("popstream.tests.structured", component="session").info(
            "stale_result_discarded", issued_epoch=1, current_epoch=2, name="clash"
        )
    finally:
        base.removeHandler(handler)

    payload = json.loads(JsonFormatter().format(record_holder[0]))

    assert payload["msg"] == "stale_result_discarded"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "popstream.tests.structured"
    assert payload["component"] == "session"
    assert payload["issued_epoch"] == 1
    assert payload["current_epoch"] == 2
    assert payload["field_name"] == "clash"
