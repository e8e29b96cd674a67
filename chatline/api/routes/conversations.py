import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Response, status

from chatline.api.common import BaseRouter
from chatline.auth_config import current_active_user
from chatline.logic.conversation_processing import (
    handle_create_conversation,
    handle_create_or_get_private,
    handle_delete_conversation,
    handle_get_conversation,
    handle_list_conversations,
    handle_update_participant_settings,
)
from chatline.logic.inbox_processing import handle_build_inbox
from chatline.logic.message_processing import handle_list_messages, handle_send_message
from chatline.models import User
from chatline.realtime.relay import RealtimeRelay, get_relay
from chatline.schemas.conversation import (
    ConversationCreateRequest,
    ConversationCreateResponse,
    ConversationDeletedResponse,
    ConversationResponse,
    PrivateConversationRequest,
)
from chatline.schemas.inbox import InboxPage
from chatline.schemas.message import MessageCreateRequest, MessagePage, MessageResponse
from chatline.schemas.participant import ParticipantResponse, ParticipantSettingsUpdate
from chatline.services.conversation_service import ConversationService
from chatline.services.dependencies import (
    get_conversation_service,
    get_inbox_service,
    get_message_service,
)
from chatline.services.inbox_service import InboxService
from chatline.services.message_service import MessageService

logger = logging.getLogger(__name__)
conversations_router_instance = APIRouter()
router = BaseRouter(router=conversations_router_instance, default_tags=["conversations"])


@router.post("/conversations/private", response_model=ConversationCreateResponse)
async def create_or_get_private_conversation(
    response: Response,
    request_data: PrivateConversationRequest,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    """Returns the live private conversation with a user, creating one if needed."""
    result = await handle_create_or_get_private(
        target_user_id=request_data.target_user_id,
        requesting_user=user,
        conv_service=conv_service,
    )
    response.status_code = (
        status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    )
    return result


@router.post("/conversations", response_model=ConversationCreateResponse)
async def create_conversation(
    response: Response,
    payload: ConversationCreateRequest = Body(..., discriminator="type"),
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    """Creates a private conversation (first message required) or a group."""
    result = await handle_create_conversation(
        payload=payload,
        creator_user=user,
        conv_service=conv_service,
        relay=relay,
    )
    response.status_code = (
        status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    )
    return result


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_list_conversations(user=user, conv_service=conv_service)


@router.get("/conversations/inbox", response_model=InboxPage)
async def get_inbox(
    limit: int | None = Query(None, ge=1),
    after: datetime | None = Query(None),
    after_id: UUID | None = Query(None),
    user: User = Depends(current_active_user),
    inbox_service: InboxService = Depends(get_inbox_service),
):
    """Keyset-paginated inbox; pass the previous page's next_cursor/next_cursor_id."""
    return await handle_build_inbox(
        user=user,
        inbox_service=inbox_service,
        limit=limit,
        after=after,
        after_id=after_id,
    )


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_get_conversation(
        conversation_id=conversation_id,
        requesting_user=user,
        conv_service=conv_service,
    )


@router.delete(
    "/conversations/{conversation_id}", response_model=ConversationDeletedResponse
)
async def delete_conversation(
    conversation_id: UUID,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    """Hides the conversation and its current history for the caller only."""
    return await handle_delete_conversation(
        conversation_id=conversation_id,
        user=user,
        conv_service=conv_service,
        relay=relay,
    )


@router.put(
    "/conversations/{conversation_id}/participants/me",
    response_model=ParticipantResponse,
    tags=["participants"],
)
async def update_my_participant_settings(
    conversation_id: UUID,
    update_data: ParticipantSettingsUpdate,
    user: User = Depends(current_active_user),
    conv_service: ConversationService = Depends(get_conversation_service),
):
    return await handle_update_participant_settings(
        conversation_id=conversation_id,
        update=update_data,
        user=user,
        conv_service=conv_service,
    )


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessagePage,
    tags=["messages"],
)
async def list_messages(
    conversation_id: UUID,
    limit: int | None = Query(None, ge=1),
    before: datetime | None = Query(None),
    before_id: UUID | None = Query(None),
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
):
    return await handle_list_messages(
        conversation_id=conversation_id,
        viewer=user,
        msg_service=msg_service,
        limit=limit,
        before=before,
        before_id=before_id,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["messages"],
)
async def send_message(
    conversation_id: UUID,
    message_data: MessageCreateRequest,
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    return await handle_send_message(
        conversation_id=conversation_id,
        text=message_data.text,
        attachments=message_data.attachments,
        sender=user,
        msg_service=msg_service,
        relay=relay,
    )
