"""Dependency container wiring for the client."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from declassifai.adapters.blob_storage_client import (
    BlobStorageClient,
    HttpxBlobStorageClient,
)
from declassifai.adapters.registry_client import HttpxRegistryClient, RegistryClient
from declassifai.adapters.supabase_session_store import SupabaseSessionStore
from declassifai.config import Settings
from declassifai.services.health import HealthService
from declassifai.services.scheduling import AsyncioScheduler, Scheduler
from declassifai.services.session_context import SessionContext
from declassifai.services.status import StatusPoller
from declassifai.services.uploads import UploadController, UploadOrchestrator
from declassifai.services.verification import VerificationResolver


@dataclass
class AppContainer:
    """Holds client-wide dependencies."""

    settings: Settings
    registry_client: RegistryClient
    blob_storage_client: BlobStorageClient
    session_context: SessionContext
    scheduler: Scheduler
    upload_orchestrator: UploadOrchestrator
    verification_resolver: VerificationResolver
    health_service: HealthService
    close_resources: Callable[[], Awaitable[None]]

    def new_status_poller(self, session: SessionContext | None = None) -> StatusPoller:
        """Create a poller scoped to one observer."""
        return StatusPoller(
            registry=self.registry_client,
            session=session or self.session_context,
            scheduler=self.scheduler,
            interval_seconds=self.settings.poll_interval_seconds,
            max_attempts=self.settings.poll_max_attempts,
        )

    def new_upload_controller(
        self, session: SessionContext | None = None
    ) -> UploadController:
        """Create an upload controller with its own status tracking."""
        return UploadController(
            orchestrator=self.upload_orchestrator,
            poller=self.new_status_poller(session),
        )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_anon_key
    )
    session_context = SessionContext(SupabaseSessionStore(supabase_client))
    registry_client = HttpxRegistryClient.create(
        base_url=resolved_settings.registry_base_url,
        timeout=resolved_settings.request_timeout_seconds,
    )
    blob_storage_client = HttpxBlobStorageClient.create(
        timeout=resolved_settings.transfer_timeout_seconds
    )
    scheduler = AsyncioScheduler()
    upload_orchestrator = UploadOrchestrator(
        registry=registry_client,
        blob_storage=blob_storage_client,
    )
    verification_resolver = VerificationResolver.default(registry_client)
    health_service = HealthService(
        registry=registry_client,
        scheduler=scheduler,
        interval_seconds=resolved_settings.health_check_interval_seconds,
    )

    async def close_resources() -> None:
        await registry_client.close()
        await blob_storage_client.close()

    return AppContainer(
        settings=resolved_settings,
        registry_client=registry_client,
        blob_storage_client=blob_storage_client,
        session_context=session_context,
        scheduler=scheduler,
        upload_orchestrator=upload_orchestrator,
        verification_resolver=verification_resolver,
        health_service=health_service,
        close_resources=close_resources,
    )
