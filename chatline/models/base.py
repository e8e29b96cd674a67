import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base, declared_attr
from sqlalchemy.types import TypeDecorator, Uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC and always hands back timezone-aware UTC datetimes.

    SQLite drops tzinfo on the way out, which makes comparisons against
    ``utcnow()`` blow up; normalising here keeps every layer on aware values.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Base = declarative_base()


# Define a base model with common fields
class BaseModel(Base):
    __abstract__ = True  # Make this an abstract base class

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Timestamps are assigned in Python so they carry microseconds on every
    # backend; message ordering relies on that precision.
    @declared_attr
    def created_at(cls):
        return Column(UTCDateTime(), nullable=False, default=utcnow)

    @declared_attr
    def updated_at(cls):
        return Column(UTCDateTime(), nullable=False, default=utcnow, onupdate=utcnow)


metadata = Base.metadata
