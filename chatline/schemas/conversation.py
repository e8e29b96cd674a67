import enum
from datetime import datetime
from typing import Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .message import Attachment, MessageResponse
from .participant import ParticipantResponse
from .user import UserSummary


class ConversationType(str, enum.Enum):
    PRIVATE = "private"
    GROUP = "group"


# Request body for POST /conversations/private
class PrivateConversationRequest(BaseModel):
    target_user_id: UUID


class PrivateConversationCreate(BaseModel):
    type: Literal["private"]
    recipient_id: UUID
    text: str | None = None


class GroupConversationCreate(BaseModel):
    type: Literal["group"]
    participant_ids: list[UUID]
    group_name: str | None = None
    group_photo: str | None = None
    text: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)


# Tagged on "type"; routes declare the discriminator on the Body parameter
ConversationCreateRequest = Union[PrivateConversationCreate, GroupConversationCreate]


class LastMessageSummary(BaseModel):
    id: UUID
    text: str | None = None
    sent_at: datetime


# Schema for the response when a conversation is created or retrieved
class ConversationResponse(BaseModel):
    id: UUID
    type: ConversationType
    group_name: str | None = None
    group_photo: str | None = None
    created_by_user_id: UUID
    participants: list[UserSummary] = Field(default_factory=list)
    last_message: LastMessageSummary | None = None
    last_activity_at: datetime
    created_at: datetime
    me: ParticipantResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class ConversationCreateResponse(BaseModel):
    conversation: ConversationResponse
    message: MessageResponse | None = None
    created: bool


class ConversationDeletedResponse(BaseModel):
    conversation_id: UUID
    deleted_at: datetime
