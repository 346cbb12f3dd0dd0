"""Bounded polling of a record's anchoring progress."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from types import TracebackType

from declassifai.adapters.registry_client import RegistryClient
from declassifai.domain.records import AnchoringStatus, FileRecord, Fingerprint
from declassifai.domain.registry import FileRecordPayload, JobStatusResponse
from declassifai.services.scheduling import AsyncioScheduler, Scheduler
from declassifai.services.session_context import SessionContext

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusSnapshot:
    """Last known anchoring state of a tracked record."""

    record_id: str
    sha256: Fingerprint
    status: AnchoringStatus
    attempts: int = 0
    record: FileRecord | None = None
    finished: bool = False


StatusListener = Callable[[StatusSnapshot], None]


@dataclass
class StatusPoller:
    """Polls ``GET /job/{record_id}`` until anchored or out of attempts.

    Failed polls are logged and count as attempts; exhausting the attempts
    leaves the last non-terminal status in place without raising. The poller
    is scoped: ``cancel()`` or leaving ``async with`` stops the timer task.
    """

    registry: RegistryClient
    session: SessionContext
    scheduler: Scheduler = field(default_factory=AsyncioScheduler)
    interval_seconds: float = 3.0
    max_attempts: int = 40
    snapshot: StatusSnapshot | None = None
    _listeners: list[StatusListener] = field(default_factory=list)
    _task: asyncio.Task[StatusSnapshot] | None = None

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Receive every snapshot change; returns an unsubscribe callback."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def poll_once(self, record_id: str) -> AnchoringStatus:
        """Fetch the current job status once, raising on failure."""
        token = await self.session.require_token()
        payload = await self.registry.get_job(token, record_id)
        return JobStatusResponse.model_validate(payload).status

    async def fetch_record(self, sha256: Fingerprint) -> FileRecord:
        """Fetch the full record registered under a fingerprint."""
        token = await self.session.require_token()
        payload = await self.registry.get_file_by_hash(token, sha256)
        return FileRecordPayload.model_validate(payload).to_record()

    async def run(self, record_id: str, sha256: Fingerprint) -> StatusSnapshot:
        """Poll until anchored or until ``max_attempts`` polls were made."""
        snapshot = StatusSnapshot(
            record_id=record_id, sha256=sha256, status=AnchoringStatus.QUEUED
        )
        self._publish(snapshot)
        for attempt in range(1, self.max_attempts + 1):
            await self.scheduler.sleep(self.interval_seconds)
            try:
                status = await self.poll_once(record_id)
            except Exception as exc:
                _logger.warning(
                    "Status poll failed (record=%s attempt %s/%s): %s",
                    record_id,
                    attempt,
                    self.max_attempts,
                    exc,
                )
                snapshot = replace(snapshot, attempts=attempt)
                self._publish(snapshot)
                continue

            if status.is_terminal:
                try:
                    record = await self.fetch_record(sha256)
                except Exception as exc:
                    _logger.warning(
                        "Record fetch after anchoring failed (sha256=%s): %s",
                        sha256,
                        exc,
                    )
                    snapshot = replace(snapshot, status=status, attempts=attempt)
                    self._publish(snapshot)
                    continue
                snapshot = replace(
                    snapshot,
                    status=status,
                    attempts=attempt,
                    record=record,
                    finished=True,
                )
                self._publish(snapshot)
                return snapshot

            snapshot = replace(snapshot, status=status, attempts=attempt)
            self._publish(snapshot)

        _logger.info(
            "Stopped polling record=%s after %s attempts, status=%s",
            record_id,
            self.max_attempts,
            snapshot.status.value,
        )
        snapshot = replace(snapshot, finished=True)
        self._publish(snapshot)
        return snapshot

    def start(
        self, record_id: str, sha256: Fingerprint
    ) -> asyncio.Task[StatusSnapshot]:
        """Start polling in the background, replacing any previous poll."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(
            self.run(record_id, sha256)
        )
        return self._task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        """Cancel the pending poll timer, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Cancel polling and wait until the task has finished."""
        task = self._task
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None

    async def __aenter__(self) -> "StatusPoller":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _publish(self, snapshot: StatusSnapshot) -> None:
        self.snapshot = snapshot
        for listener in list(self._listeners):
            listener(snapshot)
