"""Handles for files selected by the user."""

import mimetypes
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class SelectedFile:
    """A file picked for registration or verification.

    Bytes are loaded lazily through ``loader`` so that an invalidated handle
    (deleted path, closed stream) only fails when the content is needed.
    """

    name: str
    content_type: str
    loader: Callable[[], bytes]

    @classmethod
    def from_path(
        cls, path: str | Path, content_type: str | None = None
    ) -> "SelectedFile":
        """Create a handle backed by a file on disk."""
        resolved = Path(path)
        guessed, _ = mimetypes.guess_type(resolved.name)
        return cls(
            name=resolved.name,
            content_type=content_type or guessed or DEFAULT_CONTENT_TYPE,
            loader=resolved.read_bytes,
        )

    @classmethod
    def from_bytes(
        cls, name: str, data: bytes, content_type: str | None = None
    ) -> "SelectedFile":
        """Create a handle over an in-memory buffer."""
        return cls(
            name=name,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            loader=lambda: data,
        )

    def read(self) -> bytes:
        """Return the full content of the file."""
        return self.loader()
