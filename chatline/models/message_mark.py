from sqlalchemy import Column, Enum as SQLAlchemyEnum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.types import Uuid

from chatline.schemas.message import MarkKind

from .base import Base, UTCDateTime, utcnow


class MessageMark(Base):
    """One member of a message's per-user set (deletedFor, seenBy, deliveredTo).

    The composite primary key is what makes adding a user to a set idempotent.
    """

    __tablename__ = "message_marks"

    message_id = Column(
        Uuid(as_uuid=True), ForeignKey("messages.id"), primary_key=True
    )
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    kind = Column(SQLAlchemyEnum(MarkKind), primary_key=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    message = relationship("Message", back_populates="marks")
