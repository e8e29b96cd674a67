import uuid
from types import SimpleNamespace
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from chatline.models import User
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.repositories.user_repository import UserRepository
from chatline.services.conversation_service import ConversationService
from chatline.services.inbox_service import InboxService
from chatline.services.message_service import MessageService
from chatline.services.presence_service import PresenceService


def create_test_user(
    id: Optional[UUID] = None,
    username: Optional[str] = None,
    email: Optional[str] = None,
    hashed_password: Optional[str] = None,
    is_online: bool = False,
    is_active: bool = True,
    is_superuser: bool = False,
    is_verified: bool = True,
) -> User:
    """Creates a User instance with default values for testing."""
    unique_suffix = uuid.uuid4()
    return User(
        id=id or unique_suffix,
        username=username or f"testuser_{unique_suffix}",
        email=email or f"test_{unique_suffix}@example.com",
        hashed_password=hashed_password or f"password_{unique_suffix}",
        is_online=is_online,
        is_active=is_active,
        is_superuser=is_superuser,
        is_verified=is_verified,
    )


async def add_users(session: AsyncSession, *usernames: str) -> list[User]:
    """Persists one user per username and returns them in order."""
    users = [create_test_user(username=name) for name in usernames]
    session.add_all(users)
    await session.commit()
    return users


def build_services(session: AsyncSession) -> SimpleNamespace:
    """Wires repositories and services over one session, as the app's dependencies do."""
    conv_repo = ConversationRepository(session)
    part_repo = ParticipantRepository(session)
    msg_repo = MessageRepository(session)
    user_repo = UserRepository(session)
    conversations = ConversationService(
        conversation_repository=conv_repo,
        participant_repository=part_repo,
        message_repository=msg_repo,
        user_repository=user_repo,
    )
    messages = MessageService(
        message_repository=msg_repo,
        participant_repository=part_repo,
        conversation_repository=conv_repo,
        conversation_service=conversations,
    )
    return SimpleNamespace(
        conv_repo=conv_repo,
        part_repo=part_repo,
        msg_repo=msg_repo,
        user_repo=user_repo,
        conversations=conversations,
        messages=messages,
        inbox=InboxService(conversation_repository=conv_repo, message_repository=msg_repo),
        presence=PresenceService(user_repository=user_repo),
    )


class FakeWebSocket:
    """Collects JSON frames instead of sending them."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.accepted = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data: dict):
        if self.fail:
            raise RuntimeError("socket is gone")
        self.sent.append(data)

    def events(self, name: str) -> list[dict]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]
