"""Registry HTTP API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class RegistryClient(Protocol):
    """Interface for the registry endpoints consumed by the client."""

    async def presign(
        self, token: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Request presigned write credentials for a file."""

    async def commit(self, token: str, payload: dict[str, object]) -> dict[str, object]:
        """Finalize a record after the blob was uploaded."""

    async def verify_hash(self, token: str, sha256: str) -> dict[str, object]:
        """Check whether a fingerprint is registered."""

    async def verify_file(
        self, token: str, filename: str, content: bytes, content_type: str
    ) -> dict[str, object]:
        """Submit full file content for server-side verification."""

    async def get_job(self, token: str, record_id: str) -> dict[str, object]:
        """Return the anchoring job status of a record."""

    async def get_file_by_hash(self, token: str, sha256: str) -> dict[str, object]:
        """Return the full record registered under a fingerprint."""

    async def health(self) -> dict[str, object]:
        """Return the registry health payload."""


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@dataclass
class HttpxRegistryClient(RegistryClient):
    """HTTPX-backed registry client."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 30.0

    @classmethod
    def create(cls, base_url: str, timeout: float = 30.0) -> "HttpxRegistryClient":
        """Create a registry client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def presign(
        self, token: str, payload: dict[str, object]
    ) -> dict[str, object]:
        """Request presigned write credentials."""
        response = await self.http_client.post(
            f"{self.base_url}/upload-presign",
            json=payload,
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def commit(self, token: str, payload: dict[str, object]) -> dict[str, object]:
        """Commit the uploaded blob as a record."""
        response = await self.http_client.post(
            f"{self.base_url}/upload/commit",
            json=payload,
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def verify_hash(self, token: str, sha256: str) -> dict[str, object]:
        """Run the lightweight hash-only existence check."""
        response = await self.http_client.post(
            f"{self.base_url}/verify-hash",
            json={"hash": sha256},
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def verify_file(
        self, token: str, filename: str, content: bytes, content_type: str
    ) -> dict[str, object]:
        """Upload the file as multipart form data for verification."""
        response = await self.http_client.post(
            f"{self.base_url}/verify",
            files={"file": (filename, content, content_type)},
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def get_job(self, token: str, record_id: str) -> dict[str, object]:
        """Fetch the job status for a record id."""
        response = await self.http_client.get(
            f"{self.base_url}/job/{record_id}",
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def get_file_by_hash(self, token: str, sha256: str) -> dict[str, object]:
        """Fetch a record by its fingerprint."""
        response = await self.http_client.get(
            f"{self.base_url}/files/by-hash/{sha256}",
            headers=_bearer(token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def health(self) -> dict[str, object]:
        """Call the unauthenticated health endpoint."""
        response = await self.http_client.get(
            f"{self.base_url}/health",
            headers={"Cache-Control": "no-store"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
