"""Domain models for registered files."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NewType
from uuid import UUID, uuid4

from declassifai.domain.files import SelectedFile

Fingerprint = NewType("Fingerprint", str)

_FINGERPRINT_RE = re.compile(r"^[0-9a-f]{64}$")


def is_fingerprint(value: str) -> bool:
    """Return True for a 64-char lowercase hex SHA-256 digest."""
    return bool(_FINGERPRINT_RE.match(value))


class AnchoringStatus(Enum):
    """Anchoring progress reported by the registry."""

    QUEUED = "queued"
    PROCESSING = "processing"
    ANCHORED = "anchored"
    PENDING = "pending"

    @classmethod
    def from_state(cls, state: str | None) -> "AnchoringStatus":
        """Map a registry job state to a status, unknown states stay pending."""
        if not state:
            return cls.PENDING
        try:
            return cls(state.strip().lower())
        except ValueError:
            return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self is AnchoringStatus.ANCHORED


@dataclass(frozen=True)
class FileRecord:
    """A file registered with the registry, keyed by its fingerprint."""

    sha256: Fingerprint
    original_filename: str
    size: int
    content_type: str
    storage_key: str
    created_at: datetime | None
    status: AnchoringStatus
    width: int | None = None
    height: int | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None


@dataclass(frozen=True)
class RegistrationResult:
    """Outcome of a committed registration."""

    record_id: str
    sha256: Fingerprint
    storage_key: str


@dataclass
class UploadSession:
    """Client-local state for one selection-to-commit cycle."""

    file: SelectedFile
    id: UUID = field(default_factory=uuid4)
    fingerprint: Fingerprint | None = None
    in_progress: bool = False
    record_id: str | None = None
    error: str | None = None
