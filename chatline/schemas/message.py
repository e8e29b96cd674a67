import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MarkKind(str, enum.Enum):
    HIDDEN = "hidden"
    SEEN = "seen"
    DELIVERED = "delivered"


class AttachmentKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


class Attachment(BaseModel):
    kind: AttachmentKind
    url: str


# Request body for sending a message; emptiness is checked by the service
class MessageCreateRequest(BaseModel):
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class MessageIdsRequest(BaseModel):
    message_ids: list[uuid.UUID] = Field(min_length=1)


# Basic schema for representing a message as its viewer sees it
class MessageResponse(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    is_deleted_for_everyone: bool = False
    seen_by: list[uuid.UUID] = Field(default_factory=list)
    delivered_to: list[uuid.UUID] = Field(default_factory=list)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessagePage(BaseModel):
    messages: list[MessageResponse]
    has_more: bool
    next_cursor: datetime | None = None
    next_cursor_id: uuid.UUID | None = None


class MessageMarksResponse(BaseModel):
    message_ids: list[uuid.UUID]
    user_id: uuid.UUID
