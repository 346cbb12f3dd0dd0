"""Direct blob storage upload client."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class BlobStorageClient(Protocol):
    """Interface for writing bytes to a presigned storage URL."""

    async def put(self, url: str, content: bytes, headers: dict[str, str]) -> None:
        """Upload raw bytes to a presigned URL."""


@dataclass
class HttpxBlobStorageClient(BlobStorageClient):
    """Blob storage client using httpx.

    Requests go straight to the storage provider and never carry the
    registry bearer token.
    """

    http_client: httpx.AsyncClient
    timeout: float = 300.0

    @classmethod
    def create(cls, timeout: float = 300.0) -> "HttpxBlobStorageClient":
        """Create a storage client with a managed httpx session."""
        return cls(http_client=httpx.AsyncClient(), timeout=timeout)

    async def put(self, url: str, content: bytes, headers: dict[str, str]) -> None:
        """PUT the bytes using the headers the presigned URL was signed with."""
        response = await self.http_client.put(
            url, content=content, headers=headers, timeout=self.timeout
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
