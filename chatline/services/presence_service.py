import logging
from uuid import UUID

from chatline.models.base import utcnow
from chatline.repositories.user_repository import UserRepository

from .transaction import atomic

logger = logging.getLogger(__name__)


class PresenceService:
    """Persists the online flag and last-seen time shown in profile summaries."""

    def __init__(self, user_repository: UserRepository):
        self.user_repo = user_repository
        self.session = user_repository.session

    async def mark_online(self, user_id: UUID) -> None:
        async with atomic(self.session, "mark user online"):
            await self.user_repo.set_presence(user_id, True)
        logger.debug(f"User {user_id} is online.")

    async def mark_offline(self, user_id: UUID):
        last_seen_at = utcnow()
        async with atomic(self.session, "mark user offline"):
            await self.user_repo.set_presence(user_id, False, last_seen_at)
        logger.debug(f"User {user_id} went offline at {last_seen_at.isoformat()}.")
        return last_seen_at
