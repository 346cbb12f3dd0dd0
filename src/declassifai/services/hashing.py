"""Content fingerprinting."""

import asyncio
import hashlib
from dataclasses import dataclass

from declassifai.domain.files import SelectedFile
from declassifai.domain.records import Fingerprint
from declassifai.errors import FingerprintReadError


@dataclass(frozen=True)
class HashedFile:
    """File content together with its fingerprint."""

    content: bytes
    fingerprint: Fingerprint

    @property
    def size(self) -> int:
        return len(self.content)


def fingerprint(data: bytes) -> Fingerprint:
    """Return the lowercase hex SHA-256 digest of ``data``."""
    return Fingerprint(hashlib.sha256(data).hexdigest())


def _read_and_hash(file: SelectedFile) -> HashedFile:
    try:
        content = file.read()
    except OSError as exc:
        raise FingerprintReadError(f"Cannot read {file.name}: {exc}") from exc
    return HashedFile(content=content, fingerprint=fingerprint(content))


async def read_and_fingerprint(file: SelectedFile) -> HashedFile:
    """Read a file and hash it in a worker thread, off the event loop."""
    return await asyncio.to_thread(_read_and_hash, file)


async def compute_fingerprint(file: SelectedFile) -> Fingerprint:
    """Return the fingerprint of a selected file."""
    hashed = await read_and_fingerprint(file)
    return hashed.fingerprint
