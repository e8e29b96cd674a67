import logging
from datetime import datetime
from uuid import UUID

from chatline.models import User
from chatline.realtime.relay import RealtimeRelay
from chatline.schemas.message import (
    Attachment,
    MessageMarksResponse,
    MessagePage,
    MessageResponse,
)
from chatline.services import visibility
from chatline.services.conversation_service import ConversationService
from chatline.services.message_service import MessageService

logger = logging.getLogger(__name__)


async def handle_send_message(
    conversation_id: UUID,
    text: str | None,
    attachments: list[Attachment],
    sender: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> MessageResponse:
    message, conversation = await msg_service.send_message(
        conversation_id,
        sender,
        text=text,
        attachments=[a.model_dump(mode="json") for a in attachments],
    )
    await relay.message_created(conversation, message)
    return visibility.visible_content(message)


async def handle_list_messages(
    conversation_id: UUID,
    viewer: User,
    msg_service: MessageService,
    limit: int | None = None,
    before: datetime | None = None,
    before_id: UUID | None = None,
) -> MessagePage:
    return await msg_service.list_messages(
        conversation_id, viewer, limit=limit, before=before, before_id=before_id
    )


async def _handle_mark(
    event_name: str,
    message_ids: list[UUID],
    viewer: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> MessageMarksResponse:
    viewer_id = viewer.id
    if event_name == "message:seen":
        by_conversation = await msg_service.mark_seen(message_ids, viewer)
    else:
        by_conversation = await msg_service.mark_delivered(message_ids, viewer)

    for conversation_id, ids in by_conversation.items():
        participant_ids = await msg_service.participant_ids(conversation_id)
        await relay.messages_marked(
            event_name, participant_ids, conversation_id, ids, viewer_id
        )
    return MessageMarksResponse(
        message_ids=list(dict.fromkeys(message_ids)), user_id=viewer_id
    )


async def handle_mark_seen(
    message_ids: list[UUID],
    viewer: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> MessageMarksResponse:
    return await _handle_mark("message:seen", message_ids, viewer, msg_service, relay)


async def handle_mark_delivered(
    message_ids: list[UUID],
    viewer: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> MessageMarksResponse:
    return await _handle_mark(
        "message:delivered", message_ids, viewer, msg_service, relay
    )


async def handle_delete_for_self(
    message_id: UUID,
    viewer: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> dict:
    viewer_id = viewer.id
    message = await msg_service.delete_for_self(message_id, viewer)
    await relay.message_deleted_for_me(viewer_id, message)
    return {"message_id": str(message.id), "conversation_id": str(message.conversation_id)}


async def handle_delete_for_everyone(
    message_id: UUID,
    requester: User,
    msg_service: MessageService,
    relay: RealtimeRelay,
) -> MessageResponse:
    message, conversation, changed = await msg_service.delete_for_everyone(
        message_id, requester
    )
    if changed:
        await relay.message_deleted_for_everyone(conversation, message)
    return visibility.visible_content(message)


async def handle_typing(
    conversation_id: UUID,
    is_typing: bool,
    user: User,
    conv_service: ConversationService,
    relay: RealtimeRelay,
) -> None:
    """Typing indicators are only relayed for conversations the user can see."""
    user_id = user.id
    conversation, _ = await conv_service.get_conversation(conversation_id, user)
    await relay.typing(conversation, user_id, is_typing)
