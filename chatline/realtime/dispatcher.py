"""
Routes client frames from the realtime channel to the same logic handlers the
REST routes use, and always answers with an ``ack`` frame.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from chatline.logic import message_processing, user_processing
from chatline.logic.conversation_processing import handle_delete_conversation
from chatline.models import User
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.events import (
    ChatDeleteEvent,
    EventFrame,
    MessageIdEvent,
    MessageIdsEvent,
    SendMessageEvent,
    TypingEvent,
)
from chatline.services.conversation_service import ConversationService
from chatline.services.exceptions import ServiceError, UserNotFoundError
from chatline.services.message_service import MessageService
from chatline.services.presence_service import PresenceService

from .relay import RealtimeRelay

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncGenerator[AsyncSession, None]]


class EventServices:
    """Services bound to one session, built per event like FastAPI would per request."""

    def __init__(self, session: AsyncSession):
        conv_repo = ConversationRepository(session)
        part_repo = ParticipantRepository(session)
        msg_repo = MessageRepository(session)
        self.user_repo = UserRepository(session)
        self.conversations = ConversationService(
            conversation_repository=conv_repo,
            participant_repository=part_repo,
            message_repository=msg_repo,
            user_repository=self.user_repo,
        )
        self.messages = MessageService(
            message_repository=msg_repo,
            participant_repository=part_repo,
            conversation_repository=conv_repo,
            conversation_service=self.conversations,
        )
        self.presence = PresenceService(user_repository=self.user_repo)


Handler = Callable[[EventServices, User, Any], Awaitable[Any]]


def _dump(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    return result


class EventDispatcher:
    def __init__(self, session_factory: SessionFactory, relay: RealtimeRelay):
        # session_factory is an async generator dependency such as get_db_session
        self._session_scope = asynccontextmanager(session_factory)
        self.relay = relay
        self._handlers: dict[str, tuple[type[BaseModel], Handler]] = {
            "send:message": (SendMessageEvent, self._send_message),
            "message:seen": (MessageIdsEvent, self._mark_seen),
            "message:delivered": (MessageIdsEvent, self._mark_delivered),
            "message:deleteForMe": (MessageIdEvent, self._delete_for_me),
            "message:deleteForEveryone": (MessageIdEvent, self._delete_for_everyone),
            "chat:delete": (ChatDeleteEvent, self._chat_delete),
            "typing": (TypingEvent, self._typing),
        }

    async def _send_message(self, services: EventServices, user: User, data):
        return await message_processing.handle_send_message(
            data.conversation_id,
            data.text,
            data.attachments,
            user,
            services.messages,
            self.relay,
        )

    async def _mark_seen(self, services: EventServices, user: User, data):
        return await message_processing.handle_mark_seen(
            data.message_ids, user, services.messages, self.relay
        )

    async def _mark_delivered(self, services: EventServices, user: User, data):
        return await message_processing.handle_mark_delivered(
            data.message_ids, user, services.messages, self.relay
        )

    async def _delete_for_me(self, services: EventServices, user: User, data):
        return await message_processing.handle_delete_for_self(
            data.message_id, user, services.messages, self.relay
        )

    async def _delete_for_everyone(self, services: EventServices, user: User, data):
        return await message_processing.handle_delete_for_everyone(
            data.message_id, user, services.messages, self.relay
        )

    async def _chat_delete(self, services: EventServices, user: User, data):
        return await handle_delete_conversation(
            data.conversation_id, user, services.conversations, self.relay
        )

    async def _typing(self, services: EventServices, user: User, data):
        await message_processing.handle_typing(
            data.conversation_id,
            data.is_typing,
            user,
            services.conversations,
            self.relay,
        )
        return None

    async def _ack(
        self,
        websocket,
        ack_id: str | None,
        ok: bool,
        message: str,
        data: Any = None,
    ) -> None:
        frame = {
            "event": "ack",
            "data": {"ack": ack_id, "ok": ok, "message": message, "data": data},
        }
        try:
            await websocket.send_json(frame)
        except Exception as e:
            logger.warning(f"Could not deliver ack {ack_id}: {e}")

    async def dispatch(self, websocket, user_id: UUID, raw: Any) -> None:
        """Runs one client event and acknowledges it, successful or not."""
        ack_id = raw.get("ack") if isinstance(raw, dict) else None
        try:
            frame = EventFrame.model_validate(raw)
        except ValidationError as e:
            await self._ack(websocket, ack_id, False, f"Malformed frame: {e.errors()[0]['msg']}")
            return

        entry = self._handlers.get(frame.event)
        if entry is None:
            await self._ack(websocket, frame.ack, False, f"Unknown event '{frame.event}'.")
            return
        payload_model, handler = entry

        try:
            payload = payload_model.model_validate(frame.data)
        except ValidationError as e:
            await self._ack(
                websocket, frame.ack, False, f"Invalid payload: {e.errors()[0]['msg']}"
            )
            return

        try:
            async with self._session_scope() as session:
                services = EventServices(session)
                user = await services.user_repo.get_user_by_id(user_id)
                if user is None or not user.is_active:
                    raise UserNotFoundError("User not found.")
                result = await handler(services, user, payload)
        except ServiceError as e:
            logger.info(f"Realtime event {frame.event} from user {user_id} rejected: {e.message}")
            await self._ack(websocket, frame.ack, False, e.message)
            return
        except Exception as e:
            logger.error(
                f"Unexpected error handling realtime event {frame.event}: {e}",
                exc_info=True,
            )
            await self._ack(websocket, frame.ack, False, "An unexpected server error occurred.")
            return

        await self._ack(websocket, frame.ack, True, "ok", _dump(result))

    async def user_connected(self, user_id: UUID) -> None:
        try:
            async with self._session_scope() as session:
                await user_processing.handle_user_connected(
                    user_id, EventServices(session).presence, self.relay
                )
        except Exception as e:
            logger.warning(f"Could not record presence for user {user_id}: {e}")

    async def user_disconnected(self, user_id: UUID) -> None:
        try:
            async with self._session_scope() as session:
                await user_processing.handle_user_disconnected(
                    user_id, EventServices(session).presence, self.relay
                )
        except Exception as e:
            logger.warning(f"Could not record presence for user {user_id}: {e}")
