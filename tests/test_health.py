"""Tests for the registry health monitor."""

import asyncio
import contextlib

import httpx

from declassifai.services.health import HealthService
from tests.conftest import FakeRegistryClient, FakeScheduler


def test_check_reports_online_and_offline(
    registry: FakeRegistryClient, scheduler: FakeScheduler
) -> None:
    service = HealthService(registry=registry, scheduler=scheduler)

    assert asyncio.run(service.check()) is True

    registry.health_error = httpx.ConnectError("down")
    assert asyncio.run(service.check()) is False
    assert service.online is False


def test_watch_rechecks_until_cancelled(
    registry: FakeRegistryClient, scheduler: FakeScheduler
) -> None:
    service = HealthService(registry=registry, scheduler=scheduler, interval_seconds=30)
    results: list[bool] = []

    async def scenario() -> None:
        task = asyncio.create_task(service.watch(results.append))
        for _ in range(3):
            await asyncio.sleep(0)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert results
    assert all(results)
    assert set(scheduler.sleeps) == {30}
