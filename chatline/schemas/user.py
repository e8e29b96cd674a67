from datetime import datetime
from uuid import UUID

from fastapi_users import schemas
from pydantic import BaseModel, ConfigDict


class UserRead(schemas.BaseUser):
    username: str
    profile_picture: str | None = None
    is_online: bool = False
    last_seen_at: datetime | None = None


class UserCreate(schemas.BaseUserCreate):
    username: str
    profile_picture: str | None = None


class UserUpdate(schemas.BaseUserUpdate):
    username: str | None = None
    profile_picture: str | None = None


# Public profile shown to other users (inbox peers, member lists)
class UserSummary(BaseModel):
    id: UUID
    username: str
    profile_picture: str | None = None
    is_online: bool = False
    last_seen_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
