"""Registry availability monitor."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from declassifai.adapters.registry_client import RegistryClient
from declassifai.services.scheduling import AsyncioScheduler, Scheduler

_logger = logging.getLogger(__name__)


@dataclass
class HealthService:
    """Reports whether the registry answers its health endpoint."""

    registry: RegistryClient
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    interval_seconds: float = 30.0
    online: bool | None = None

    async def check(self) -> bool:
        """Return True when the registry is reachable, never raising."""
        try:
            await self.registry.health()
        except Exception as exc:
            _logger.warning("Registry health check failed: %s", exc)
            self.online = False
        else:
            self.online = True
        return self.online

    async def watch(self, on_change: Callable[[bool], None]) -> None:
        """Recheck forever, reporting every result, until cancelled."""
        while True:
            on_change(await self.check())
            await self.scheduler.sleep(self.interval_seconds)
