# Makes 'models' a package and simplifies imports

from .base import Base, BaseModel, metadata
from .conversation import Conversation
from .message import Message
from .message_mark import MessageMark
from .participant import Participant
from .user import User

__all__ = [
    "Base",
    "BaseModel",
    "metadata",
    "User",
    "Conversation",
    "Message",
    "MessageMark",
    "Participant",
]
