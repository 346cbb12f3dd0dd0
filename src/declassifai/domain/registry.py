"""Pydantic models for registry request and response payloads."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool

from declassifai.domain.records import (
    AnchoringStatus,
    FileRecord,
    Fingerprint,
)


class PresignRequest(BaseModel):
    """Body of ``POST /upload-presign``."""

    sha256: str
    filename: str
    content_type: str
    size: int = Field(ge=0)


class PresignResponse(BaseModel):
    """Presigned write credentials issued by the registry."""

    url: str
    key: str
    headers: dict[str, str] = Field(default_factory=dict)

    def required_content_type(self, fallback: str) -> str:
        """Return the content type the presigned write was signed for."""
        for name, value in self.headers.items():
            if name.lower() == "content-type" and value:
                return value
        return fallback

    def transfer_headers(self, fallback_content_type: str) -> dict[str, str]:
        """Return headers for the direct upload, registry values first."""
        headers = {
            name: value
            for name, value in self.headers.items()
            if name.lower() != "content-type"
        }
        headers["Content-Type"] = self.required_content_type(fallback_content_type)
        return headers


class CommitRequest(BaseModel):
    """Body of ``POST /upload/commit``."""

    sha256: str
    key: str
    size: int = Field(ge=0)
    content_type: str
    original_filename: str


class CommitResponse(BaseModel):
    """Identifier of a committed record."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    record_id: str = Field(validation_alias=AliasChoices("record_id", "id"))


class VerifyResponse(BaseModel):
    """Answer of the hash-only and full-content verification endpoints."""

    found: StrictBool


class AnchorInfo(BaseModel):
    """Ledger anchoring details of a job."""

    state: str | None = None
    tx_hash: str | None = None
    explorer_url: str | None = None


class JobStatusResponse(BaseModel):
    """Payload of ``GET /job/{record_id}``."""

    anchored: AnchorInfo | None = None

    @property
    def status(self) -> AnchoringStatus:
        if self.anchored is None:
            return AnchoringStatus.PENDING
        return AnchoringStatus.from_state(self.anchored.state)


class FileRecordPayload(BaseModel):
    """Payload of ``GET /files/by-hash/{sha256}``."""

    sha256: str
    original_filename: str = Field(
        default="", validation_alias=AliasChoices("original_filename", "filename")
    )
    size: int = 0
    content_type: str = "application/octet-stream"
    storage_key: str = Field(
        default="", validation_alias=AliasChoices("storage_key", "key", "s3_key")
    )
    created_at: datetime | None = None
    width: int | None = None
    height: int | None = None
    anchored: AnchorInfo | None = None

    def to_record(self) -> FileRecord:
        """Convert the payload into a domain record."""
        anchor = self.anchored or AnchorInfo()
        return FileRecord(
            sha256=Fingerprint(self.sha256.lower()),
            original_filename=self.original_filename,
            size=self.size,
            content_type=self.content_type,
            storage_key=self.storage_key,
            created_at=self.created_at,
            status=AnchoringStatus.from_state(anchor.state),
            width=self.width,
            height=self.height,
            tx_hash=anchor.tx_hash,
            explorer_url=anchor.explorer_url,
        )
