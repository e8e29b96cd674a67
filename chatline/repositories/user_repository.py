from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatline.models import Participant, User

from .base import BaseRepository


class UserRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Retrieves a user by their ID."""
        stmt = select(User).filter(User.id == user_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_users_by_ids(self, user_ids: Sequence[UUID]) -> Sequence[User]:
        stmt = select(User).filter(User.id.in_(user_ids))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_user_by_username(self, username: str) -> User | None:
        """Retrieves a user by their username."""
        stmt = select(User).filter(User.username == username)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_users(
        self,
        *,
        exclude_user: User | None = None,
        participated_with_user: User | None = None,
    ) -> Sequence[User]:
        """Lists users, optionally excluding a user and filtering by participation.

        Args:
            exclude_user: If provided, this user will be excluded from the results.
            participated_with_user: If provided, only lists users who share a
                                     conversation the given user still sees.
        """
        stmt = select(User)

        if participated_with_user:
            # Conversations the target user has not hidden
            visible_conv_subq = (
                select(Participant.conversation_id)
                .where(
                    Participant.user_id == participated_with_user.id,
                    Participant.deleted_at.is_(None),
                )
                .scalar_subquery()
            )
            co_participant_ids_stmt = (
                select(Participant.user_id)
                .where(
                    Participant.conversation_id.in_(visible_conv_subq),
                    Participant.user_id != participated_with_user.id,
                )
                .distinct()
            )
            stmt = stmt.filter(User.id.in_(co_participant_ids_stmt))

        # Apply exclusion filter
        if exclude_user:
            stmt = stmt.filter(User.id != exclude_user.id)

        stmt = stmt.order_by(User.username)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def set_presence(
        self, user_id: UUID, is_online: bool, last_seen_at: datetime | None = None
    ) -> None:
        values = {"is_online": is_online}
        if last_seen_at is not None:
            values["last_seen_at"] = last_seen_at
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
