"""Clock abstraction for timers and polling loops."""

import asyncio
from typing import Protocol


class Scheduler(Protocol):
    """Suspends the current task for a number of seconds."""

    async def sleep(self, seconds: float) -> None:
        """Wait for ``seconds`` before resuming."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
