from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from .message import Attachment


# Envelope of every realtime frame in both directions
class EventFrame(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)
    ack: str | None = None


class SendMessageEvent(BaseModel):
    conversation_id: UUID
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


class MessageIdsEvent(BaseModel):
    message_ids: list[UUID] = Field(min_length=1)


class MessageIdEvent(BaseModel):
    message_id: UUID


class ChatDeleteEvent(BaseModel):
    conversation_id: UUID


class TypingEvent(BaseModel):
    conversation_id: UUID
    is_typing: bool = True
