"""
Post-commit fan-out of state changes to connected participants.

Every method is best-effort: failures are logged and dropped, so a mutation
that already committed is never reported as failed because of the relay.
"""

import logging
from datetime import datetime
from functools import wraps
from typing import Iterable
from uuid import UUID

from chatline.models import Conversation, Message
from chatline.models.base import utcnow
from chatline.services import visibility

from .connection_manager import ConnectionManager, manager

logger = logging.getLogger(__name__)


def event(name: str, data: dict) -> dict:
    return {"event": name, "data": data}


def best_effort(func):
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Realtime relay {func.__name__} failed: {e}", exc_info=True)
            return None

    return wrapper


class RealtimeRelay:
    def __init__(self, connection_manager: ConnectionManager):
        self.manager = connection_manager

    @staticmethod
    def _participant_ids(conversation: Conversation) -> list[UUID]:
        return [p.user_id for p in conversation.participants]

    @best_effort
    async def message_created(self, conversation: Conversation, message: Message):
        payload = visibility.visible_content(message).model_dump(mode="json")
        recipients = self._participant_ids(conversation)
        await self.manager.send_to_users(
            recipients, event("message:received", {"message": payload})
        )

        now = utcnow()
        notified = [
            p.user_id
            for p in conversation.participants
            if p.user_id != message.sender_id
            and p.deleted_at is None
            and (p.muted_until is None or p.muted_until <= now)
        ]
        await self.manager.send_to_users(
            notified,
            event(
                "notification:new_message",
                {
                    "conversation_id": str(conversation.id),
                    "message_id": str(message.id),
                    "sender_id": str(message.sender_id),
                    "text": payload["text"],
                },
            ),
        )

    @best_effort
    async def messages_marked(
        self,
        event_name: str,
        participant_ids: Iterable[UUID],
        conversation_id: UUID,
        message_ids: list[UUID],
        user_id: UUID,
    ):
        """message:seen / message:delivered to the other participants."""
        await self.manager.send_to_users(
            participant_ids,
            event(
                event_name,
                {
                    "conversation_id": str(conversation_id),
                    "message_ids": [str(m) for m in message_ids],
                    "user_id": str(user_id),
                },
            ),
            exclude=user_id,
        )

    @best_effort
    async def message_deleted_for_me(self, user_id: UUID, message: Message):
        await self.manager.send_to_user(
            user_id,
            event(
                "message:deletedForMe",
                {
                    "conversation_id": str(message.conversation_id),
                    "message_id": str(message.id),
                },
            ),
        )

    @best_effort
    async def message_deleted_for_everyone(
        self, conversation: Conversation, message: Message
    ):
        last_message = None
        if conversation.last_message_id is not None:
            last_message = {
                "id": str(conversation.last_message_id),
                "text": conversation.last_message_text,
                "sent_at": conversation.last_message_sent_at.isoformat(),
            }
        await self.manager.send_to_users(
            self._participant_ids(conversation),
            event(
                "message:deletedForEveryone",
                {
                    "conversation_id": str(conversation.id),
                    "message_id": str(message.id),
                    "last_message": last_message,
                },
            ),
        )

    @best_effort
    async def chat_deleted(self, user_id: UUID, conversation_id: UUID):
        await self.manager.send_to_user(
            user_id, event("chat:deleted", {"conversation_id": str(conversation_id)})
        )

    @best_effort
    async def typing(self, conversation: Conversation, user_id: UUID, is_typing: bool):
        await self.manager.send_to_users(
            self._participant_ids(conversation),
            event(
                "typing",
                {
                    "conversation_id": str(conversation.id),
                    "user_id": str(user_id),
                    "is_typing": is_typing,
                },
            ),
            exclude=user_id,
        )

    @best_effort
    async def user_status(
        self, user_id: UUID, is_online: bool, last_seen_at: datetime | None = None
    ):
        data = {
            "user_id": str(user_id),
            "is_online": is_online,
            "last_seen_at": last_seen_at.isoformat() if last_seen_at else None,
        }
        await self.manager.broadcast(event("user:status", data))
        await self.manager.broadcast(
            event("user:online" if is_online else "user:offline", data),
            exclude=user_id,
        )


relay = RealtimeRelay(manager)


def get_relay() -> RealtimeRelay:
    return relay
