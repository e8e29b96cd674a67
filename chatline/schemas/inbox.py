from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .conversation import ConversationType, LastMessageSummary
from .message import MessageResponse
from .participant import ParticipantResponse
from .user import UserSummary


class InboxItem(BaseModel):
    conversation_id: UUID
    type: ConversationType
    group_name: str | None = None
    group_photo: str | None = None
    peer: UserSummary | None = None
    members: list[UserSummary] = Field(default_factory=list)
    last_message: LastMessageSummary | None = None
    last_unread_message: MessageResponse | None = None
    last_activity_at: datetime
    created_at: datetime
    me: ParticipantResponse


class InboxPage(BaseModel):
    items: list[InboxItem]
    has_more: bool
    next_cursor: datetime | None = None
    next_cursor_id: UUID | None = None
