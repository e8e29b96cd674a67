from sqlalchemy import JSON, Boolean, Column, ForeignKey, Index, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from chatline.schemas.message import MarkKind

from .base import BaseModel, UTCDateTime


class Message(BaseModel):
    __tablename__ = "messages"

    # id, created_at are inherited from BaseModel; (created_at, id) is the
    # total order of a conversation.
    conversation_id = Column(
        Uuid(as_uuid=True), ForeignKey("conversations.id"), nullable=False
    )
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=True)
    attachments = Column(JSON, nullable=False, default=list)
    is_deleted_for_everyone = Column(Boolean, nullable=False, default=False)
    deleted_for_everyone_at = Column(UTCDateTime(), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", back_populates="messages", foreign_keys=[sender_id])
    marks = relationship(
        "MessageMark",
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_messages_conversation_order", "conversation_id", "created_at", "id"),
    )

    def _users_with(self, kind: MarkKind) -> set:
        return {mark.user_id for mark in self.marks if mark.kind == kind}

    @property
    def deleted_for(self) -> set:
        return self._users_with(MarkKind.HIDDEN)

    @property
    def seen_by(self) -> set:
        return self._users_with(MarkKind.SEEN)

    @property
    def delivered_to(self) -> set:
        return self._users_with(MarkKind.DELIVERED)
