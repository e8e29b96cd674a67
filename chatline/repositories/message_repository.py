import uuid
from datetime import datetime
from typing import Sequence

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chatline.models import Message, MessageMark
from chatline.repositories.base import BaseRepository
from chatline.schemas.message import MarkKind


class MessageRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session)

    async def create_message(
        self,
        conversation_id: uuid.UUID,
        sender_id: uuid.UUID,
        created_at: datetime,
        *,
        text: str | None = None,
        attachments: list[dict] | None = None,
    ) -> Message:
        """Creates and adds a new message to the session. Text is stored trimmed."""
        if text is not None:
            text = text.strip() or None
        new_message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            text=text,
            attachments=attachments or [],
            is_deleted_for_everyone=False,
            created_at=created_at,
            updated_at=created_at,
            marks=[],
        )
        self.session.add(new_message)
        await self.session.flush()
        return new_message

    async def get_message_by_id(self, message_id: uuid.UUID) -> Message | None:
        stmt = (
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_messages_by_ids(
        self, message_ids: Sequence[uuid.UUID]
    ) -> Sequence[Message]:
        stmt = select(Message).where(Message.id.in_(message_ids))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    def _not_marked(self, user_id: uuid.UUID, kind: MarkKind):
        return ~exists().where(
            MessageMark.message_id == Message.id,
            MessageMark.user_id == user_id,
            MessageMark.kind == kind,
        )

    async def list_visible_page(
        self,
        conversation_id: uuid.UUID,
        viewer_id: uuid.UUID,
        limit: int,
        *,
        watermark: datetime | None = None,
        before: datetime | None = None,
        before_id: uuid.UUID | None = None,
    ) -> Sequence[Message]:
        """Newest-first keyset page of messages the viewer may see.

        Returns up to ``limit + 1`` rows; the extra row only signals more pages.
        """
        stmt = select(Message).where(
            Message.conversation_id == conversation_id,
            self._not_marked(viewer_id, MarkKind.HIDDEN),
        )
        if watermark is not None:
            stmt = stmt.where(Message.created_at > watermark)
        if before is not None:
            if before_id is not None:
                stmt = stmt.where(
                    or_(
                        Message.created_at < before,
                        and_(Message.created_at == before, Message.id < before_id),
                    )
                )
            else:
                stmt = stmt.where(Message.created_at < before)
        stmt = (
            stmt.order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit + 1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_latest_live_message(
        self, conversation_id: uuid.UUID
    ) -> Message | None:
        """Most recent message of a conversation that is not tombstoned."""
        stmt = (
            select(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.is_deleted_for_everyone.is_(False),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_last_unread_message(
        self,
        conversation_id: uuid.UUID,
        viewer_id: uuid.UUID,
        watermark: datetime | None = None,
    ) -> Message | None:
        """Most recent visible message from someone else the viewer has not seen."""
        stmt = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.sender_id != viewer_id,
            Message.is_deleted_for_everyone.is_(False),
            self._not_marked(viewer_id, MarkKind.HIDDEN),
            self._not_marked(viewer_id, MarkKind.SEEN),
        )
        if watermark is not None:
            stmt = stmt.where(Message.created_at > watermark)
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def add_marks(
        self,
        message_ids: Sequence[uuid.UUID],
        user_id: uuid.UUID,
        kind: MarkKind,
        now: datetime,
    ) -> None:
        """Adds ``user_id`` to the ``kind`` set of each message; duplicates are no-ops."""
        if not message_ids:
            return
        rows = [
            {"message_id": message_id, "user_id": user_id, "kind": kind, "created_at": now}
            for message_id in dict.fromkeys(message_ids)
        ]
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(MessageMark).values(rows).on_conflict_do_nothing()
        elif dialect == "sqlite":
            stmt = sqlite_insert(MessageMark).values(rows).on_conflict_do_nothing()
        else:
            existing = await self.session.execute(
                select(MessageMark.message_id).where(
                    MessageMark.message_id.in_([row["message_id"] for row in rows]),
                    MessageMark.user_id == user_id,
                    MessageMark.kind == kind,
                )
            )
            already = set(existing.scalars().all())
            rows = [row for row in rows if row["message_id"] not in already]
            if not rows:
                return
            self.session.add_all(MessageMark(**row) for row in rows)
            await self.session.flush()
            return
        await self.session.execute(stmt)

    async def tombstone(self, message_id: uuid.UUID, now: datetime) -> bool:
        """Sets is_deleted_for_everyone once; returns False if it was already set."""
        stmt = (
            update(Message)
            .where(
                Message.id == message_id,
                Message.is_deleted_for_everyone.is_(False),
            )
            .values(is_deleted_for_everyone=True, deleted_for_everyone_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1
