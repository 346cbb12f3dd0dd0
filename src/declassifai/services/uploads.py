"""Three-phase file registration: presign, transfer, commit."""

import logging
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from declassifai.adapters.blob_storage_client import BlobStorageClient
from declassifai.adapters.registry_client import RegistryClient
from declassifai.domain.files import SelectedFile
from declassifai.domain.records import Fingerprint, RegistrationResult, UploadSession
from declassifai.domain.registry import (
    CommitRequest,
    CommitResponse,
    PresignRequest,
    PresignResponse,
)
from declassifai.errors import (
    CommitError,
    NotAuthenticatedError,
    PresignError,
    RegistrationError,
    TransferError,
)
from declassifai.services.hashing import HashedFile, read_and_fingerprint
from declassifai.services.http_errors import (
    message_from_exception,
    status_code_from_exception,
)
from declassifai.services.session_context import SessionContext
from declassifai.services.status import StatusPoller

_logger = logging.getLogger(__name__)


@dataclass
class UploadOrchestrator:
    """Registers a file with the registry.

    Phases run strictly in order and are never retried. A transfer that
    succeeds followed by a failed commit leaves an orphaned blob, which the
    registry is expected to collect.
    """

    registry: RegistryClient
    blob_storage: BlobStorageClient

    async def register(
        self,
        file: SelectedFile,
        session: SessionContext,
        hashed: HashedFile | None = None,
    ) -> RegistrationResult:
        """Run presign, transfer and commit for ``file``."""
        if hashed is None:
            hashed = await read_and_fingerprint(file)
        presign = await self._presign(file, hashed, session)
        content_type = presign.required_content_type(file.content_type)
        await self._transfer(presign, hashed, file.content_type)
        record_id = await self._commit(file, hashed, presign.key, content_type, session)
        _logger.info(
            "Registered %s sha256=%s record=%s",
            file.name,
            hashed.fingerprint,
            record_id,
        )
        return RegistrationResult(
            record_id=record_id, sha256=hashed.fingerprint, storage_key=presign.key
        )

    async def _presign(
        self, file: SelectedFile, hashed: HashedFile, session: SessionContext
    ) -> PresignResponse:
        request = PresignRequest(
            sha256=hashed.fingerprint,
            filename=file.name,
            content_type=file.content_type,
            size=hashed.size,
        )
        token = await session.require_token()
        try:
            payload = await self.registry.presign(token, request.model_dump())
        except httpx.HTTPError as exc:
            _logger.warning("Presign failed for %s: %s", file.name, exc)
            raise PresignError(
                message_from_exception(exc), status_code_from_exception(exc)
            ) from exc
        except ValueError as exc:
            raise PresignError("Malformed presign response") from exc
        try:
            return PresignResponse.model_validate(payload)
        except ValidationError as exc:
            raise PresignError("Malformed presign response") from exc

    async def _transfer(
        self, presign: PresignResponse, hashed: HashedFile, declared_type: str
    ) -> None:
        try:
            await self.blob_storage.put(
                presign.url,
                hashed.content,
                presign.transfer_headers(declared_type),
            )
        except httpx.HTTPError as exc:
            _logger.warning("Transfer failed for key=%s: %s", presign.key, exc)
            raise TransferError(
                message_from_exception(exc), status_code_from_exception(exc)
            ) from exc

    async def _commit(  # noqa: PLR0913
        self,
        file: SelectedFile,
        hashed: HashedFile,
        key: str,
        content_type: str,
        session: SessionContext,
    ) -> str:
        request = CommitRequest(
            sha256=hashed.fingerprint,
            key=key,
            size=hashed.size,
            content_type=content_type,
            original_filename=file.name,
        )
        token = await session.require_token()
        try:
            payload = await self.registry.commit(token, request.model_dump())
        except httpx.HTTPError as exc:
            _logger.warning("Commit failed for key=%s: %s", key, exc)
            raise CommitError(
                message_from_exception(exc), status_code_from_exception(exc)
            ) from exc
        except ValueError as exc:
            raise CommitError("Malformed commit response") from exc
        try:
            return CommitResponse.model_validate(payload).record_id
        except ValidationError as exc:
            raise CommitError("Malformed commit response") from exc


@dataclass
class UploadController:
    """Owns the current upload session and its status tracking.

    Selecting a new file replaces the session; results of calls that were
    started for an older selection are discarded when they arrive.
    """

    orchestrator: UploadOrchestrator
    poller: StatusPoller | None = None
    current: UploadSession | None = None
    completed: UploadSession | None = None

    def select(self, file: SelectedFile) -> UploadSession:
        """Start a new session for ``file``, dropping the previous one."""
        if self.poller is not None:
            self.poller.cancel()
        self.current = UploadSession(file=file)
        self.completed = None
        return self.current

    def reset(self) -> None:
        """Forget the current selection."""
        if self.poller is not None:
            self.poller.cancel()
        self.current = None
        self.completed = None

    async def compute_fingerprint(self) -> Fingerprint | None:
        """Hash the selected file and store the fingerprint on the session."""
        upload = self._require_selection()
        hashed = await read_and_fingerprint(upload.file)
        if not self._is_current(upload):
            return None
        upload.fingerprint = hashed.fingerprint
        return hashed.fingerprint

    async def submit(self, session: SessionContext) -> RegistrationResult | None:
        """Register the selected file.

        Returns None when the selection changed while the registration was in
        flight, whatever its outcome. Otherwise phase errors are recorded on
        the session and re-raised.
        """
        upload = self._require_selection()
        if upload.in_progress:
            raise RuntimeError("A registration is already in progress")
        upload.in_progress = True
        upload.error = None
        try:
            hashed = await read_and_fingerprint(upload.file)
            if not self._is_current(upload):
                return None
            upload.fingerprint = hashed.fingerprint
            result = await self.orchestrator.register(upload.file, session, hashed)
        except (RegistrationError, NotAuthenticatedError) as exc:
            if not self._is_current(upload):
                _logger.info("Ignoring failure of a stale selection: %s", exc)
                return None
            upload.error = str(exc)
            raise
        finally:
            upload.in_progress = False

        if not self._is_current(upload):
            _logger.info("Discarding registration of a stale selection %s", upload.id)
            return None
        upload.record_id = result.record_id
        self.completed = upload
        self.current = None
        if self.poller is not None:
            self.poller.start(result.record_id, result.sha256)
        return result

    async def aclose(self) -> None:
        """Tear down status tracking owned by this controller."""
        if self.poller is not None:
            await self.poller.aclose()

    def _require_selection(self) -> UploadSession:
        if self.current is None:
            raise ValueError("No file selected")
        return self.current

    def _is_current(self, upload: UploadSession) -> bool:
        return self.current is upload
