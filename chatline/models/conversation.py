from sqlalchemy import Column, Enum as SQLAlchemyEnum, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from chatline.schemas.conversation import ConversationType

from .base import BaseModel, UTCDateTime, utcnow


class Conversation(BaseModel):
    __tablename__ = "conversations"

    # id, created_at, updated_at are inherited from BaseModel
    type = Column(SQLAlchemyEnum(ConversationType), nullable=False)
    group_name = Column(Text, nullable=True)
    group_photo = Column(Text, nullable=True)
    created_by_user_id = Column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    # Recency sort key; bumped on message activity only.
    last_activity_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    # lastMessage projection; no FK so the two tables don't reference each other.
    last_message_id = Column(Uuid(as_uuid=True), nullable=True)
    last_message_text = Column(Text, nullable=True)
    last_message_sent_at = Column(UTCDateTime(), nullable=True)

    # Normalised unordered user pair, private conversations only. Every thread
    # of a pair keeps pair_key; only the current one holds open_pair_key.
    pair_key = Column(Text, nullable=True, index=True)
    open_pair_key = Column(Text, nullable=True, unique=True)

    creator = relationship(
        "User",
        back_populates="created_conversations",
        foreign_keys=[created_by_user_id],
    )
    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan"
    )
    participants = relationship(
        "Participant", back_populates="conversation", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_conversations_activity", "last_activity_at", "id"),
    )

    def participant_for(self, user_id):
        """Returns the loaded participant record for ``user_id``, if any."""
        return next((p for p in self.participants if p.user_id == user_id), None)
