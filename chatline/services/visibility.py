"""Per-user visibility rules for conversations and messages.

Everything here is pure: callers load the rows, these functions decide.
"""

from typing import Iterable
from uuid import UUID

from chatline.models import Conversation, Message, Participant
from chatline.schemas.conversation import LastMessageSummary
from chatline.schemas.message import MessageResponse

from .exceptions import BlockedError, NotAuthorizedError


def is_conversation_visible(participant: Participant | None) -> bool:
    return participant is not None and participant.deleted_at is None


def is_message_visible(
    message: Message, user_id: UUID, participant: Participant
) -> bool:
    """Tombstoned messages stay visible; only their content is suppressed."""
    if user_id in message.deleted_for:
        return False
    watermark = participant.hide_messages_before
    if watermark is not None and message.created_at <= watermark:
        return False
    return True


def visible_content(message: Message) -> MessageResponse:
    """Projects a message for display, blanking the content of tombstones."""
    tombstoned = bool(message.is_deleted_for_everyone)
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        sender_id=message.sender_id,
        text=None if tombstoned else message.text,
        attachments=[] if tombstoned else list(message.attachments or []),
        is_deleted_for_everyone=tombstoned,
        seen_by=sorted(message.seen_by),
        delivered_to=sorted(message.delivered_to),
        created_at=message.created_at,
    )


def check_private_access(me: Participant, other: Participant) -> bool:
    """Guards re-entry into an existing private thread.

    Raises when either side has blocked, or when the other side has hidden the
    thread. Returns True when the requester's own record needs restoring.
    """
    if me.blocked or other.blocked:
        raise BlockedError("This conversation is blocked.")
    if other.deleted_at is not None:
        raise NotAuthorizedError(
            "The other participant has removed this conversation."
        )
    return me.deleted_at is not None


def is_pair_blocked(threads: Iterable[Conversation]) -> bool:
    return any(p.blocked for thread in threads for p in thread.participants)


def current_private_thread(threads: Iterable[Conversation]) -> Conversation | None:
    return next((t for t in threads if t.open_pair_key is not None), None)


def other_participant(conversation: Conversation, user_id: UUID) -> Participant | None:
    return next((p for p in conversation.participants if p.user_id != user_id), None)


def last_message_for_viewer(
    conversation: Conversation, participant: Participant
) -> LastMessageSummary | None:
    """The lastMessage projection, or None when it sits behind the viewer's watermark."""
    if conversation.last_message_id is None:
        return None
    watermark = participant.hide_messages_before
    if watermark is not None and conversation.last_message_sent_at <= watermark:
        return None
    return LastMessageSummary(
        id=conversation.last_message_id,
        text=conversation.last_message_text,
        sent_at=conversation.last_message_sent_at,
    )
