import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from chatline.models import Conversation, Message, Participant, User
from chatline.models.base import utcnow
from chatline.repositories.conversation_repository import (
    ConversationRepository,
    make_pair_key,
)
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.conversation import ConversationType

from . import visibility
from .exceptions import (
    BlockedError,
    BusinessRuleError,
    ConflictError,
    ConversationNotFoundError,
    DatabaseError,
    InvalidInputError,
    NotAuthorizedError,
    UserNotFoundError,
)
from .transaction import atomic

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        participant_repository: ParticipantRepository,
        message_repository: MessageRepository,
        user_repository: UserRepository,
    ):
        self.conv_repo = conversation_repository
        self.part_repo = participant_repository
        self.msg_repo = message_repository
        self.user_repo = user_repository
        # The session is implicitly shared via the repositories
        self.session = conversation_repository.session

    async def _load(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conv_repo.get_conversation_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(
                f"Conversation with ID '{conversation_id}' not found."
            )
        return conversation

    async def _resolve_private_target(self, requester_id: UUID, target_user_id: UUID):
        if requester_id == target_user_id:
            raise BusinessRuleError("Cannot create a conversation with yourself.")
        target = await self.user_repo.get_user_by_id(target_user_id)
        if not target:
            raise UserNotFoundError(f"User with ID '{target_user_id}' not found.")
        return target

    # --- private conversations -------------------------------------------------

    async def create_or_get_private_conversation(
        self, requester: User, target_user_id: UUID
    ) -> tuple[Conversation, bool]:
        """Returns the pair's current thread, or starts a fresh one.

        The current thread is reused only while both sides still see it. If
        either side has hidden it, a new thread with fresh participant records
        replaces it; the hidden thread is never resurrected.

        Returns:
            (conversation, created)
        """
        requester_id = requester.id
        await self._resolve_private_target(requester_id, target_user_id)
        pair_key = make_pair_key(requester_id, target_user_id)

        try:
            return await self._create_or_get_private(
                requester_id, target_user_id, pair_key
            )
        except ConflictError:
            # Lost a creation race: the unique open_pair_key index rejected our
            # insert, so the winner's thread is now current.
            logger.info(
                f"Private conversation race for pair {pair_key}; returning winner."
            )
            threads = await self.conv_repo.list_private_threads(pair_key)
            current = visibility.current_private_thread(threads)
            if (
                current is None
                or len(current.participants) != 2
                or not all(
                    visibility.is_conversation_visible(p) for p in current.participants
                )
            ):
                raise
            return current, False

    async def _create_or_get_private(
        self, requester_id: UUID, target_user_id: UUID, pair_key: str
    ) -> tuple[Conversation, bool]:
        now = utcnow()
        async with atomic(self.session, "create private conversation"):
            threads = await self.conv_repo.list_private_threads(pair_key)
            if visibility.is_pair_blocked(threads):
                raise BlockedError("Cannot start a conversation with this user.")

            current = visibility.current_private_thread(threads)
            if current is not None:
                if len(current.participants) != 2:
                    raise ConflictError("Private conversation is in an inconsistent state.")
                if all(
                    visibility.is_conversation_visible(p) for p in current.participants
                ):
                    return current, False
                logger.info(
                    f"Retiring hidden private conversation {current.id} for pair {pair_key}."
                )
                await self.conv_repo.retire_private_thread(current.id)

            conversation = await self.conv_repo.create_conversation(
                ConversationType.PRIVATE,
                created_by_user_id=requester_id,
                now=now,
                pair_key=pair_key,
            )
            await self.part_repo.add_participants(
                conversation.id, [requester_id, target_user_id], joined_at=now
            )
            conversation_id = conversation.id

        logger.info(f"Created private conversation {conversation_id} for pair {pair_key}.")
        return await self._load(conversation_id), True

    async def create_private_conversation_with_message(
        self,
        creator: User,
        target_user_id: UUID,
        text: str | None,
    ) -> tuple[Conversation, Message, bool]:
        """Opens (or re-enters) a private thread with a mandatory first message.

        Returns:
            (conversation, message, created)
        """
        if not text or not text.strip():
            raise InvalidInputError("An initial message is required.")
        creator_id = creator.id
        await self._resolve_private_target(creator_id, target_user_id)
        pair_key = make_pair_key(creator_id, target_user_id)

        try:
            return await self._private_with_message(
                creator_id, target_user_id, pair_key, text
            )
        except ConflictError:
            logger.info(
                f"Private conversation race for pair {pair_key}; retrying on the existing thread."
            )
            return await self._private_with_message(
                creator_id, target_user_id, pair_key, text
            )

    async def _private_with_message(
        self, creator_id: UUID, target_user_id: UUID, pair_key: str, text: str
    ) -> tuple[Conversation, Message, bool]:
        now = utcnow()
        async with atomic(self.session, "create private conversation"):
            threads = await self.conv_repo.list_private_threads(pair_key)
            if visibility.is_pair_blocked(threads):
                raise BlockedError("Cannot start a conversation with this user.")

            current = visibility.current_private_thread(threads)
            if current is not None:
                if len(current.participants) != 2:
                    raise ConflictError("Private conversation is in an inconsistent state.")
                me = current.participant_for(creator_id)
                other = visibility.other_participant(current, creator_id)
                if visibility.check_private_access(me, other):
                    await self.part_repo.restore_for_user(me.id)
                conversation_id = current.id
                created = False
            else:
                conversation = await self.conv_repo.create_conversation(
                    ConversationType.PRIVATE,
                    created_by_user_id=creator_id,
                    now=now,
                    pair_key=pair_key,
                )
                await self.part_repo.add_participants(
                    conversation.id, [creator_id, target_user_id], joined_at=now
                )
                conversation_id = conversation.id
                created = True

            message = await self.msg_repo.create_message(
                conversation_id, creator_id, now, text=text
            )
            await self.conv_repo.advance_last_message(message)

        return await self._load(conversation_id), message, created

    # --- group conversations ---------------------------------------------------

    async def create_group_conversation(
        self,
        creator: User,
        member_ids: list[UUID],
        group_name: str | None,
        group_photo: str | None = None,
        text: str | None = None,
        attachments: list[dict] | None = None,
    ) -> tuple[Conversation, Message | None]:
        """Creates a group with the creator plus at least two other members.

        The conversation, its participants and the optional first message are
        committed together or not at all.
        """
        creator_id = creator.id
        if len(member_ids) < 2:
            raise InvalidInputError("A group needs at least 2 other participants.")
        if len(set(member_ids)) != len(member_ids):
            raise InvalidInputError("Duplicate participant IDs are not allowed.")
        if creator_id in member_ids:
            raise InvalidInputError("Do not include yourself in the participant list.")
        if not group_name or not group_name.strip():
            raise InvalidInputError("A group name is required.")

        users = await self.user_repo.get_users_by_ids(member_ids)
        missing = set(member_ids) - {u.id for u in users}
        if missing:
            raise UserNotFoundError(
                f"Users not found: {', '.join(sorted(str(m) for m in missing))}."
            )

        now = utcnow()
        message = None
        async with atomic(self.session, "create group conversation"):
            conversation = await self.conv_repo.create_conversation(
                ConversationType.GROUP,
                created_by_user_id=creator_id,
                now=now,
                group_name=group_name.strip(),
                group_photo=group_photo,
            )
            await self.part_repo.add_participants(
                conversation.id, [creator_id, *member_ids], joined_at=now
            )
            if (text and text.strip()) or attachments:
                message = await self.msg_repo.create_message(
                    conversation.id,
                    creator_id,
                    now,
                    text=text,
                    attachments=attachments,
                )
                await self.conv_repo.advance_last_message(message)
            conversation_id = conversation.id

        logger.info(
            f"User {creator_id} created group conversation {conversation_id} "
            f"with {len(member_ids)} members."
        )
        return await self._load(conversation_id), message

    # --- reads -----------------------------------------------------------------

    async def list_for_user(self, user: User) -> list[Conversation]:
        """Conversations the user has not hidden, most recently active first."""
        try:
            return list(await self.conv_repo.list_user_conversations(user.id))
        except SQLAlchemyError as e:
            logger.error(
                f"Database error fetching conversations for user {user.id}: {e}",
                exc_info=True,
            )
            raise DatabaseError(
                "Failed to fetch user conversations due to a database error."
            )

    async def get_conversation(
        self, conversation_id: UUID, user: User
    ) -> tuple[Conversation, Participant]:
        conversation = await self._load(conversation_id)
        participant = conversation.participant_for(user.id)
        if not visibility.is_conversation_visible(participant):
            raise ConversationNotFoundError(
                f"Conversation with ID '{conversation_id}' not found."
            )
        return conversation, participant

    # --- participant transitions -----------------------------------------------

    async def soft_delete_for_user(
        self, conversation_id: UUID, user: User
    ) -> tuple[Conversation, Participant, bool]:
        """Hides the conversation for the caller only.

        Returns:
            (conversation, participant, changed); changed is False when the
            conversation was already hidden with the same watermark.
        """
        user_id = user.id
        conversation = await self._load(conversation_id)
        participant = conversation.participant_for(user_id)
        if participant is None:
            raise NotAuthorizedError("User is not a participant in this conversation.")
        if participant.blocked:
            raise BlockedError("Cannot delete a blocked conversation.")

        if (
            participant.deleted_at is not None
            and participant.deleted_at == participant.hide_messages_before
        ):
            logger.debug(
                f"Conversation {conversation_id} already hidden for user {user_id}."
            )
            return conversation, participant, False

        async with atomic(self.session, "delete conversation"):
            await self.part_repo.hide_for_user(participant.id, utcnow())

        participant = await self.part_repo.get_participant_by_user_and_conversation(
            user_id, conversation_id
        )
        logger.info(f"User {user_id} hid conversation {conversation_id}.")
        return conversation, participant, True

    async def update_participant_settings(
        self,
        conversation_id: UUID,
        user: User,
        *,
        archived: bool | None = None,
        muted_until: datetime | None = None,
        unmute: bool = False,
        blocked: bool | None = None,
    ) -> Participant:
        """Updates the caller's own presentation hints and block flag."""
        user_id = user.id
        conversation = await self._load(conversation_id)
        participant = conversation.participant_for(user_id)
        if participant is None:
            raise NotAuthorizedError("User is not a participant in this conversation.")
        if blocked is not None and conversation.type != ConversationType.PRIVATE:
            raise BusinessRuleError("Only private conversations can be blocked.")

        now = utcnow()
        values = {}
        if archived is not None:
            values["archived_at"] = now if archived else None
        if unmute:
            values["muted_until"] = None
        elif muted_until is not None:
            values["muted_until"] = muted_until
        if blocked is not None:
            values["blocked"] = blocked

        async with atomic(self.session, "update participant settings"):
            await self.part_repo.update_settings(participant.id, **values)

        return await self.part_repo.get_participant_by_user_and_conversation(
            user_id, conversation_id
        )

    # --- lastMessage bookkeeping -----------------------------------------------

    async def update_last_message_on_delete(
        self, conversation_id: UUID, deleted_message_id: UUID, now: datetime
    ) -> bool:
        """Recomputes lastMessage after ``deleted_message_id`` was tombstoned.

        Runs inside the caller's transaction and does nothing unless the
        tombstoned message is still the current lastMessage.
        """
        replacement = await self.msg_repo.get_latest_live_message(conversation_id)
        replaced = await self.conv_repo.replace_last_message(
            conversation_id, deleted_message_id, replacement, now
        )
        if replaced:
            logger.debug(
                f"lastMessage of conversation {conversation_id} moved from "
                f"{deleted_message_id} to {replacement.id if replacement else None}."
            )
        return replaced
