from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


# The viewer's own per-conversation hints
class ParticipantResponse(BaseModel):
    user_id: UUID
    conversation_id: UUID
    deleted_at: datetime | None = None
    hide_messages_before: datetime | None = None
    archived_at: datetime | None = None
    muted_until: datetime | None = None
    blocked: bool = False
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ParticipantSettingsUpdate(BaseModel):
    archived: bool | None = None
    muted_until: datetime | None = None
    unmute: bool = False
    blocked: bool | None = None
