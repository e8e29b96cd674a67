from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chatline.models import Participant

from .base import BaseRepository


class ParticipantRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def add_participants(
        self, conversation_id: UUID, user_ids: Sequence[UUID], joined_at: datetime
    ) -> list[Participant]:
        """Creates fresh participant records for a new conversation."""
        participants = [
            Participant(
                user_id=user_id,
                conversation_id=conversation_id,
                joined_at=joined_at,
                blocked=False,
            )
            for user_id in user_ids
        ]
        self.session.add_all(participants)
        await self.session.flush()
        return participants

    async def get_participant_by_user_and_conversation(
        self, user_id: UUID, conversation_id: UUID
    ) -> Participant | None:
        """Retrieves a participant record by user and conversation ID."""
        stmt = (
            select(Participant)
            .filter(
                Participant.user_id == user_id,
                Participant.conversation_id == conversation_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_memberships(
        self, user_id: UUID, conversation_ids: Sequence[UUID]
    ) -> Sequence[Participant]:
        """Participant records of one user across several conversations."""
        stmt = select(Participant).filter(
            Participant.user_id == user_id,
            Participant.conversation_id.in_(conversation_ids),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_user_ids(self, conversation_id: UUID) -> list[UUID]:
        stmt = select(Participant.user_id).filter(
            Participant.conversation_id == conversation_id
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def hide_for_user(self, participant_id: UUID, now: datetime) -> bool:
        """Active -> Hidden; the watermark moves in lockstep with deleted_at."""
        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values(deleted_at=now, hide_messages_before=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def restore_for_user(self, participant_id: UUID) -> bool:
        """Hidden -> Active for the requester's own record only."""
        stmt = (
            update(Participant)
            .where(
                Participant.id == participant_id,
                Participant.deleted_at.is_not(None),
            )
            .values(deleted_at=None, hide_messages_before=None)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def update_settings(self, participant_id: UUID, **values) -> None:
        """Writes presentation hints (archived_at, muted_until, blocked)."""
        if not values:
            return
        stmt = (
            update(Participant)
            .where(Participant.id == participant_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
