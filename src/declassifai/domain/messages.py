"""Tagged messages exchanged across the embedding boundary."""

import logging
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

AUTH_MESSAGE_TYPE = "declassifai-auth"
RESIZE_MESSAGE_TYPE = "declassifai:resize"
LEGACY_RESIZE_MESSAGE_TYPE = "DECLASSIFAI_EMBED_HEIGHT"
SCROLL_TOP_MESSAGE_TYPE = "declassifai:scrollTop"

_logger = logging.getLogger(__name__)


class AuthTokenMessage(BaseModel):
    """Carries a session token from the embedded window to its host."""

    type: Literal["declassifai-auth"] = AUTH_MESSAGE_TYPE
    token: str = Field(min_length=1)


class EmbedResizeMessage(BaseModel):
    """Tells the host page how tall the embedded document is."""

    type: Literal["declassifai:resize", "DECLASSIFAI_EMBED_HEIGHT"] = (
        RESIZE_MESSAGE_TYPE
    )
    height: int = Field(ge=0)


class ScrollTopMessage(BaseModel):
    """Asks the host page to scroll the embedding frame into view."""

    type: Literal["declassifai:scrollTop"] = SCROLL_TOP_MESSAGE_TYPE


RelayMessage = Annotated[
    AuthTokenMessage | EmbedResizeMessage | ScrollTopMessage,
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[RelayMessage] = TypeAdapter(RelayMessage)


def parse_message(raw: object) -> RelayMessage | None:
    """Validate a received payload, returning None for anything unrecognized."""
    if not isinstance(raw, dict):
        return None
    try:
        return _MESSAGE_ADAPTER.validate_python(raw)
    except ValidationError as exc:
        _logger.debug("Ignoring relay message type=%s: %s", raw.get("type"), exc)
        return None


def to_payload(message: RelayMessage) -> dict[str, object]:
    """Serialize a message into the plain object posted across frames."""
    return message.model_dump()
