"""Resolve whether a file matches a registered record."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import httpx
from pydantic import ValidationError

from declassifai.adapters.registry_client import RegistryClient
from declassifai.domain.files import SelectedFile
from declassifai.domain.records import Fingerprint
from declassifai.domain.registry import VerifyResponse
from declassifai.errors import VerificationError
from declassifai.services.hashing import HashedFile, read_and_fingerprint
from declassifai.services.http_errors import message_from_exception
from declassifai.services.session_context import SessionContext

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Answer of a verification request."""

    matched: bool
    sha256: Fingerprint
    tier: str


class VerificationStrategy(Protocol):
    """One tier of the verification chain."""

    name: str

    async def check(
        self, file: SelectedFile, hashed: HashedFile, token: str
    ) -> bool | None:
        """Return True/False when definitive, None when inconclusive."""


@dataclass
class HashOnlyStrategy(VerificationStrategy):
    """Asks the registry whether the fingerprint is known."""

    registry: RegistryClient
    name: str = "hash"

    async def check(
        self, file: SelectedFile, hashed: HashedFile, token: str
    ) -> bool | None:
        try:
            payload = await self.registry.verify_hash(token, hashed.fingerprint)
            return VerifyResponse.model_validate(payload).found
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            _logger.info("Hash-only verification unavailable: %s", exc)
            return None


@dataclass
class FullContentStrategy(VerificationStrategy):
    """Uploads the file so the registry hashes and looks it up itself."""

    registry: RegistryClient
    name: str = "content"

    async def check(
        self, file: SelectedFile, hashed: HashedFile, token: str
    ) -> bool | None:
        try:
            payload = await self.registry.verify_file(
                token, file.name, hashed.content, file.content_type
            )
        except httpx.HTTPError as exc:
            raise VerificationError(
                f"Verification failed: {message_from_exception(exc)}"
            ) from exc
        except ValueError as exc:
            raise VerificationError("Malformed verification response") from exc
        try:
            return VerifyResponse.model_validate(payload).found
        except ValidationError as exc:
            raise VerificationError("Malformed verification response") from exc


@dataclass
class VerificationResolver:
    """Tries each strategy in order until one gives a definitive answer.

    A "no match" answer is a successful result. Nothing is written to the
    registry.
    """

    strategies: Sequence[VerificationStrategy] = field(default_factory=list)

    @classmethod
    def default(cls, registry: RegistryClient) -> "VerificationResolver":
        """Hash-only check first, full-content upload as fallback."""
        return cls(
            strategies=[HashOnlyStrategy(registry), FullContentStrategy(registry)]
        )

    async def resolve(
        self, file: SelectedFile, session: SessionContext
    ) -> VerificationResult:
        """Return whether ``file`` matches a registered record."""
        hashed = await read_and_fingerprint(file)
        for strategy in self.strategies:
            token = await session.require_token()
            found = await strategy.check(file, hashed, token)
            if found is not None:
                _logger.info(
                    "Verified sha256=%s via %s: found=%s",
                    hashed.fingerprint,
                    strategy.name,
                    found,
                )
                return VerificationResult(
                    matched=found, sha256=hashed.fingerprint, tier=strategy.name
                )
        raise VerificationError("No verification tier produced an answer")
