"""Tests for container wiring."""

import asyncio

from declassifai.containers import build_container
from declassifai.services.verification import FullContentStrategy, HashOnlyStrategy


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    controller = container.new_upload_controller()
    strategies = container.verification_resolver.strategies

    assert controller.poller is not None
    assert controller.poller.max_attempts == 40
    assert controller.poller.interval_seconds == 3.0
    assert [type(strategy) for strategy in strategies] == [
        HashOnlyStrategy,
        FullContentStrategy,
    ]
    asyncio.run(container.close_resources())
