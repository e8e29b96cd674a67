from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from .base import BaseModel, UTCDateTime, utcnow


class Participant(BaseModel):
    __tablename__ = "participants"

    # id, created_at, updated_at inherited from BaseModel
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False
    )
    # null = conversation shows in this user's inbox
    deleted_at = Column(UTCDateTime(), nullable=True)
    # watermark: only messages created strictly after it are visible
    hide_messages_before = Column(UTCDateTime(), nullable=True)
    archived_at = Column(UTCDateTime(), nullable=True)
    muted_until = Column(UTCDateTime(), nullable=True)
    blocked = Column(Boolean, nullable=False, default=False)
    joined_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    user = relationship("User", back_populates="participations", foreign_keys=[user_id])
    conversation = relationship(
        "Conversation", back_populates="participants", foreign_keys=[conversation_id]
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "conversation_id", name="uq_participant_user_conversation"
        ),
    )
