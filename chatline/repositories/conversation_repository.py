from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import and_, case, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from chatline.models import Conversation, Message, Participant
from chatline.models.base import UTCDateTime
from chatline.schemas.conversation import ConversationType

from .base import BaseRepository


def make_pair_key(user_a: UUID, user_b: UUID) -> str:
    """Normalised key of an unordered user pair."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


class ConversationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    def _with_participants(self, stmt):
        return stmt.options(
            selectinload(Conversation.participants).selectinload(Participant.user)
        ).execution_options(populate_existing=True)

    async def get_conversation_by_id(
        self, conversation_id: UUID
    ) -> Conversation | None:
        """Retrieves a conversation and its participants by ID."""
        stmt = self._with_participants(
            select(Conversation).filter(Conversation.id == conversation_id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_private_threads(self, pair_key: str) -> Sequence[Conversation]:
        """Every private conversation ever created for a pair, newest first.

        Block state and the current thread are both read from this one result.
        """
        stmt = self._with_participants(
            select(Conversation)
            .filter(
                Conversation.type == ConversationType.PRIVATE,
                Conversation.pair_key == pair_key,
            )
            .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def create_conversation(
        self,
        conversation_type: ConversationType,
        created_by_user_id: UUID,
        now: datetime,
        *,
        group_name: str | None = None,
        group_photo: str | None = None,
        pair_key: str | None = None,
    ) -> Conversation:
        """Creates a new conversation row without participants."""
        new_conversation = Conversation(
            type=conversation_type,
            created_by_user_id=created_by_user_id,
            group_name=group_name,
            group_photo=group_photo,
            pair_key=pair_key,
            open_pair_key=pair_key,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(new_conversation)
        await self.session.flush()
        return new_conversation

    async def retire_private_thread(self, conversation_id: UUID) -> None:
        """Releases the pair's open slot so a fresh thread can take it."""
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(open_pair_key=None)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def list_user_conversations(self, user_id: UUID) -> Sequence[Conversation]:
        """Lists conversations visible to a user, most recently active first."""
        stmt = self._with_participants(
            select(Conversation)
            .join(Participant, Conversation.id == Participant.conversation_id)
            .filter(
                Participant.user_id == user_id,
                Participant.deleted_at.is_(None),
            )
            .order_by(Conversation.last_activity_at.desc(), Conversation.id.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_inbox_page(
        self,
        user_id: UUID,
        limit: int,
        after: datetime | None = None,
        after_id: UUID | None = None,
    ) -> Sequence[Conversation]:
        """Keyset page over visible conversations ordered by (last_activity_at, id) desc.

        Returns up to ``limit + 1`` rows so the caller can tell whether more remain.
        """
        stmt = (
            select(Conversation)
            .join(Participant, Conversation.id == Participant.conversation_id)
            .filter(
                Participant.user_id == user_id,
                Participant.deleted_at.is_(None),
            )
        )
        if after is not None:
            if after_id is not None:
                stmt = stmt.filter(
                    or_(
                        Conversation.last_activity_at < after,
                        and_(
                            Conversation.last_activity_at == after,
                            Conversation.id < after_id,
                        ),
                    )
                )
            else:
                stmt = stmt.filter(Conversation.last_activity_at < after)
        stmt = self._with_participants(
            stmt.order_by(
                Conversation.last_activity_at.desc(), Conversation.id.desc()
            ).limit(limit + 1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def advance_last_message(self, message: Message) -> bool:
        """Points lastMessage at ``message`` unless a later message already holds it.

        Compare-and-set on the persisted (created_at, id) of the current pointer,
        so a slower commit of an older message can never overwrite a newer one.
        """
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == message.conversation_id,
                or_(
                    Conversation.last_message_sent_at.is_(None),
                    Conversation.last_message_sent_at < message.created_at,
                    and_(
                        Conversation.last_message_sent_at == message.created_at,
                        Conversation.last_message_id <= message.id,
                    ),
                ),
            )
            .values(
                last_message_id=message.id,
                last_message_text=message.text,
                last_message_sent_at=message.created_at,
                last_activity_at=case(
                    (
                        Conversation.last_activity_at < message.created_at,
                        literal(message.created_at, UTCDateTime()),
                    ),
                    else_=Conversation.last_activity_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def replace_last_message(
        self,
        conversation_id: UUID,
        expected_message_id: UUID,
        replacement: Message | None,
        now: datetime,
    ) -> bool:
        """Swaps lastMessage only while it still points at ``expected_message_id``."""
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                Conversation.last_message_id == expected_message_id,
            )
            .values(
                last_message_id=replacement.id if replacement else None,
                last_message_text=replacement.text if replacement else None,
                last_message_sent_at=replacement.created_at if replacement else None,
                last_activity_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
