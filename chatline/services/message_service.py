import logging
from datetime import datetime
from uuid import UUID

from chatline.core.config import settings
from chatline.models import Conversation, Message, User
from chatline.models.base import utcnow
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.schemas.conversation import ConversationType
from chatline.schemas.message import MarkKind, MessagePage

from . import visibility
from .conversation_service import ConversationService
from .exceptions import (
    BlockedError,
    ConversationNotFoundError,
    InvalidInputError,
    MessageNotFoundError,
    NotAuthorizedError,
)
from .transaction import atomic

logger = logging.getLogger(__name__)


def clamp_limit(limit: int | None, default: int) -> int:
    if limit is None:
        return default
    return max(1, min(limit, settings.MAX_PAGE_SIZE))


class MessageService:
    def __init__(
        self,
        message_repository: MessageRepository,
        participant_repository: ParticipantRepository,
        conversation_repository: ConversationRepository,
        conversation_service: ConversationService,
    ):
        self.msg_repo = message_repository
        self.part_repo = participant_repository
        self.conv_repo = conversation_repository
        self.conv_service = conversation_service
        self.session = message_repository.session

    async def send_message(
        self,
        conversation_id: UUID,
        sender: User,
        text: str | None = None,
        attachments: list[dict] | None = None,
    ) -> tuple[Message, Conversation]:
        """Persists a message and advances lastMessage in one transaction."""
        sender_id = sender.id
        if (not text or not text.strip()) and not attachments:
            raise InvalidInputError("A message needs text or at least one attachment.")

        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(
                f"Conversation with ID '{conversation_id}' not found."
            )
        participant = conversation.participant_for(sender_id)
        if not visibility.is_conversation_visible(participant):
            raise NotAuthorizedError(
                "User is not an active participant in this conversation."
            )
        if conversation.type == ConversationType.PRIVATE and visibility.is_pair_blocked(
            [conversation]
        ):
            raise BlockedError("Cannot send messages in a blocked conversation.")

        async with atomic(self.session, "send message"):
            message = await self.msg_repo.create_message(
                conversation_id,
                sender_id,
                utcnow(),
                text=text,
                attachments=attachments,
            )
            advanced = await self.conv_repo.advance_last_message(message)
            if not advanced:
                logger.debug(
                    f"Message {message.id} is older than the current lastMessage "
                    f"of conversation {conversation_id}."
                )

        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        logger.info(
            f"User {sender_id} sent message {message.id} to conversation {conversation_id}."
        )
        return message, conversation

    async def list_messages(
        self,
        conversation_id: UUID,
        viewer: User,
        limit: int | None = None,
        before: datetime | None = None,
        before_id: UUID | None = None,
    ) -> MessagePage:
        """One page of the viewer's visible history, delivered oldest-first.

        ``before``/``before_id`` is the keyset cursor returned by the previous
        page; with both set, pages never skip or repeat a message.
        """
        viewer_id = viewer.id
        limit = clamp_limit(limit, settings.MESSAGES_PAGE_SIZE)

        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        if not conversation:
            raise ConversationNotFoundError(
                f"Conversation with ID '{conversation_id}' not found."
            )
        participant = conversation.participant_for(viewer_id)
        if not visibility.is_conversation_visible(participant):
            raise ConversationNotFoundError(
                f"Conversation with ID '{conversation_id}' not found."
            )

        rows = await self.msg_repo.list_visible_page(
            conversation_id,
            viewer_id,
            limit,
            watermark=participant.hide_messages_before,
            before=before,
            before_id=before_id,
        )
        has_more = len(rows) > limit
        page = list(rows[:limit])
        page.reverse()

        oldest = page[0] if page else None
        return MessagePage(
            messages=[
                visibility.visible_content(m)
                for m in page
                if visibility.is_message_visible(m, viewer_id, participant)
            ],
            has_more=has_more,
            next_cursor=oldest.created_at if has_more else None,
            next_cursor_id=oldest.id if has_more else None,
        )

    async def _mark(
        self, message_ids: list[UUID], viewer: User, kind: MarkKind
    ) -> dict[UUID, list[UUID]]:
        viewer_id = viewer.id
        unique_ids = list(dict.fromkeys(message_ids))
        if not unique_ids:
            raise InvalidInputError("No message IDs given.")

        messages = await self.msg_repo.get_messages_by_ids(unique_ids)
        found = {m.id for m in messages}
        missing = [str(i) for i in unique_ids if i not in found]
        if missing:
            raise MessageNotFoundError(f"Messages not found: {', '.join(missing)}.")

        by_conversation: dict[UUID, list[UUID]] = {}
        for message in messages:
            by_conversation.setdefault(message.conversation_id, []).append(message.id)

        memberships = await self.part_repo.list_memberships(
            viewer_id, list(by_conversation)
        )
        if {p.conversation_id for p in memberships} != set(by_conversation):
            raise NotAuthorizedError(
                "User is not a participant in every conversation of these messages."
            )

        async with atomic(self.session, f"mark messages {kind.value}"):
            await self.msg_repo.add_marks(unique_ids, viewer_id, kind, utcnow())

        logger.debug(f"User {viewer_id} marked {len(unique_ids)} messages {kind.value}.")
        return by_conversation

    async def mark_seen(
        self, message_ids: list[UUID], viewer: User
    ) -> dict[UUID, list[UUID]]:
        """Adds the viewer to seenBy of every message; repeats are no-ops.

        Returns the marked message IDs grouped by conversation.
        """
        return await self._mark(message_ids, viewer, MarkKind.SEEN)

    async def mark_delivered(
        self, message_ids: list[UUID], viewer: User
    ) -> dict[UUID, list[UUID]]:
        return await self._mark(message_ids, viewer, MarkKind.DELIVERED)

    async def participant_ids(self, conversation_id: UUID) -> list[UUID]:
        return await self.part_repo.list_user_ids(conversation_id)

    async def delete_for_self(self, message_id: UUID, viewer: User) -> Message:
        """Hides one message from the viewer only; lastMessage is untouched."""
        viewer_id = viewer.id
        message = await self.msg_repo.get_message_by_id(message_id)
        if not message:
            raise MessageNotFoundError(f"Message with ID '{message_id}' not found.")
        participant = await self.part_repo.get_participant_by_user_and_conversation(
            viewer_id, message.conversation_id
        )
        if not participant:
            raise NotAuthorizedError("User is not a participant in this conversation.")

        async with atomic(self.session, "delete message"):
            await self.msg_repo.add_marks([message_id], viewer_id, MarkKind.HIDDEN, utcnow())

        return await self.msg_repo.get_message_by_id(message_id)

    async def delete_for_everyone(
        self, message_id: UUID, requester: User
    ) -> tuple[Message, Conversation, bool]:
        """Tombstones a message for all viewers. Only its sender may do this.

        Returns:
            (message, conversation, changed); repeated calls report changed=False.
        """
        requester_id = requester.id
        message = await self.msg_repo.get_message_by_id(message_id)
        if not message:
            raise MessageNotFoundError(f"Message with ID '{message_id}' not found.")
        if message.sender_id != requester_id:
            raise NotAuthorizedError("Only the sender can delete this message for everyone.")
        conversation_id = message.conversation_id

        now = utcnow()
        async with atomic(self.session, "delete message for everyone"):
            changed = await self.msg_repo.tombstone(message_id, now)
            if changed:
                await self.conv_service.update_last_message_on_delete(
                    conversation_id, message_id, now
                )

        if changed:
            logger.info(f"User {requester_id} deleted message {message_id} for everyone.")
        message = await self.msg_repo.get_message_by_id(message_id)
        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        return message, conversation, changed
