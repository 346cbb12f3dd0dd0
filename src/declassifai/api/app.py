"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict

import httpx
from fastapi import (
    Depends,
    FastAPI,
    File,
    Header,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)
from pydantic import ValidationError

from declassifai.app_logging import configure_logging
from declassifai.config import parse_allowed_origins
from declassifai.containers import AppContainer
from declassifai.domain.files import SelectedFile
from declassifai.domain.records import is_fingerprint
from declassifai.errors import RegistrationError, VerificationError
from declassifai.services.session_context import SessionContext


async def require_session(
    authorization: str | None = Header(default=None),
) -> SessionContext:
    """Build a session context from the caller's bearer token."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return SessionContext.for_token(token.strip())


async def _selected_file(upload: UploadFile) -> SelectedFile:
    data = await upload.read()
    return SelectedFile.from_bytes(
        name=upload.filename or "upload",
        data=data,
        content_type=upload.content_type,
    )


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    allowed_origins = parse_allowed_origins(container.settings.embed_allowed_origins)
    frame_ancestors = " ".join(["'self'", *allowed_origins])

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.middleware("http")
    async def frame_ancestors_header(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers["Content-Security-Policy"] = (
            f"frame-ancestors {frame_ancestors};"
        )
        return response

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/registry/health")
    async def registry_health(request: Request) -> dict[str, str]:
        """Report whether the registry is reachable."""
        state_container: AppContainer = request.app.state.container
        online = await state_container.health_service.check()
        return {"status": "online" if online else "offline"}

    @app.get("/embed/config")
    async def embed_config(request: Request) -> dict[str, object]:
        """Relay settings for the embedded pages."""
        settings = request.app.state.container.settings
        return {
            "target_origin": settings.relay_target_origin,
            "allowed_origins": list(allowed_origins),
            "layout_interval_seconds": settings.layout_interval_seconds,
            "close_delay_seconds": settings.relay_close_delay_seconds,
        }

    @app.post("/files/register")
    async def register_file(
        request: Request,
        file: UploadFile = File(...),
        session: SessionContext = Depends(require_session),
    ) -> dict[str, str]:
        """Register an uploaded file through presign, transfer and commit."""
        state_container: AppContainer = request.app.state.container
        selected = await _selected_file(file)
        try:
            result = await state_container.upload_orchestrator.register(
                selected, session
            )
        except RegistrationError as exc:
            logger.warning("Registration of %s failed: %s", selected.name, exc)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail={
                    "phase": exc.phase,
                    "status_code": exc.status_code,
                    "message": exc.message,
                },
            ) from exc
        return {
            "record_id": result.record_id,
            "sha256": result.sha256,
            "key": result.storage_key,
        }

    @app.post("/files/verify")
    async def verify_file(
        request: Request,
        file: UploadFile = File(...),
        session: SessionContext = Depends(require_session),
    ) -> dict[str, object]:
        """Check whether an uploaded file matches a registered record."""
        state_container: AppContainer = request.app.state.container
        selected = await _selected_file(file)
        try:
            result = await state_container.verification_resolver.resolve(
                selected, session
            )
        except VerificationError as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
            ) from exc
        return {"matched": result.matched, "sha256": result.sha256, "tier": result.tier}

    @app.get("/files/jobs/{record_id}")
    async def job_status(
        record_id: str,
        request: Request,
        sha256: str | None = None,
        session: SessionContext = Depends(require_session),
    ) -> dict[str, object]:
        """Poll a record's anchoring status once."""
        state_container: AppContainer = request.app.state.container
        if sha256 is not None and not is_fingerprint(sha256):
            raise HTTPException(
                status_code=422,
                detail="sha256 must be a 64-char lowercase hex digest",
            )
        poller = state_container.new_status_poller(session)
        try:
            anchoring = await poller.poll_once(record_id)
            record = None
            if anchoring.is_terminal and sha256 is not None:
                record = await poller.fetch_record(sha256)
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
            ) from exc
        return {
            "record_id": record_id,
            "status": anchoring.value,
            "record": asdict(record) if record else None,
        }

    return app
