"""Outbound message models.

Each Viber message type gets its own closed schema: unknown fields are
rejected instead of being merged into the request body. The schemas are
combined into a discriminated union keyed on ``type``.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from viber_relay.exceptions import ValidationError

# Wire contract, order matches the Viber documentation
MESSAGE_TYPES: tuple[str, ...] = (
    "text",
    "picture",
    "video",
    "file",
    "sticker",
    "contact",
    "url",
    "location",
)


# =============================================================================
# Shared parts
# =============================================================================


class Sender(BaseModel):
    """Sender identity shown to the receiving user."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=28)
    avatar: str | None = None


class Contact(BaseModel):
    """Contact card payload."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=28)
    phone_number: str = Field(min_length=1, max_length=18)


class Location(BaseModel):
    """Location pin payload."""

    model_config = ConfigDict(extra="forbid")

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class BaseOutboundMessage(BaseModel):
    """Fields common to every outbound message type."""

    model_config = ConfigDict(extra="forbid")

    receiver: str = Field(min_length=1)
    sender: Sender | None = None
    tracking_data: str | None = Field(default=None, max_length=4096)
    min_api_version: int | None = Field(default=None, ge=1)
    keyboard: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the send_message request body."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# Per-type schemas
# =============================================================================


class TextMessage(BaseOutboundMessage):
    type: Literal["text"] = "text"
    text: str = Field(min_length=1, max_length=7000)


class PictureMessage(BaseOutboundMessage):
    type: Literal["picture"] = "picture"
    media: str = Field(min_length=1)
    text: str | None = Field(default=None, max_length=768)
    thumbnail: str | None = None


class VideoMessage(BaseOutboundMessage):
    type: Literal["video"] = "video"
    media: str = Field(min_length=1)
    size: int = Field(gt=0)
    duration: int | None = Field(default=None, ge=0, le=180)
    thumbnail: str | None = None
    text: str | None = Field(default=None, max_length=768)


class FileMessage(BaseOutboundMessage):
    type: Literal["file"] = "file"
    media: str = Field(min_length=1)
    size: int = Field(gt=0)
    file_name: str = Field(min_length=1, max_length=256)


class StickerMessage(BaseOutboundMessage):
    type: Literal["sticker"] = "sticker"
    sticker_id: int


class ContactMessage(BaseOutboundMessage):
    type: Literal["contact"] = "contact"
    contact: Contact


class UrlMessage(BaseOutboundMessage):
    type: Literal["url"] = "url"
    media: str = Field(min_length=1, max_length=2000)


class LocationMessage(BaseOutboundMessage):
    type: Literal["location"] = "location"
    location: Location


OutboundMessage = Annotated[
    Union[
        TextMessage,
        PictureMessage,
        VideoMessage,
        FileMessage,
        StickerMessage,
        ContactMessage,
        UrlMessage,
        LocationMessage,
    ],
    Field(discriminator="type"),
]

_outbound_adapter: TypeAdapter[OutboundMessage] = TypeAdapter(OutboundMessage)


def parse_outbound_message(data: Any) -> BaseOutboundMessage:
    """Validate raw request data into a typed outbound message.

    A missing ``type`` defaults to ``text``.

    Args:
        data: Parsed JSON body or an already-built message model

    Returns:
        The typed message model

    Raises:
        ValidationError: If the type is not in MESSAGE_TYPES or the payload
            does not match the schema for its type.
    """
    if isinstance(data, BaseOutboundMessage):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Message must be a JSON object")

    data = dict(data)
    if data.get("type") is None:
        data["type"] = "text"
    if data["type"] not in MESSAGE_TYPES:
        raise ValidationError(
            f"Invalid message type: {data['type']!r}",
            errors=[{"loc": ["type"], "msg": "Invalid message type"}],
        )

    try:
        return _outbound_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {data['type']} message",
            errors=e.errors(include_url=False, include_context=False),
        ) from e


# =============================================================================
# Send results
# =============================================================================


class SendMessageResponse(BaseModel):
    """Response payload of the send_message endpoint."""

    status: int
    status_message: str | None = None
    message_token: int | None = None
    chat_hostname: str | None = None
    billing_status: int | None = None


class SendResult(BaseModel):
    """Outcome of a send, returned to the caller and broadcast."""

    success: bool
    message_token: int | None = None
    chat_hostname: str | None = None
    error: str | None = None
