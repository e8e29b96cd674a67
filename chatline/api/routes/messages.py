import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from chatline.api.common import BaseRouter
from chatline.auth_config import current_active_user
from chatline.logic.message_processing import (
    handle_delete_for_everyone,
    handle_delete_for_self,
    handle_mark_delivered,
    handle_mark_seen,
)
from chatline.models import User
from chatline.realtime.relay import RealtimeRelay, get_relay
from chatline.schemas.message import (
    MessageIdsRequest,
    MessageMarksResponse,
    MessageResponse,
)
from chatline.services.dependencies import get_message_service
from chatline.services.message_service import MessageService

logger = logging.getLogger(__name__)
messages_router_instance = APIRouter()
router = BaseRouter(router=messages_router_instance, default_tags=["messages"])


@router.post("/messages/seen", response_model=MessageMarksResponse)
async def mark_messages_seen(
    request_data: MessageIdsRequest,
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    return await handle_mark_seen(
        message_ids=request_data.message_ids,
        viewer=user,
        msg_service=msg_service,
        relay=relay,
    )


@router.post("/messages/delivered", response_model=MessageMarksResponse)
async def mark_messages_delivered(
    request_data: MessageIdsRequest,
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    return await handle_mark_delivered(
        message_ids=request_data.message_ids,
        viewer=user,
        msg_service=msg_service,
        relay=relay,
    )


@router.delete("/messages/{message_id}/me")
async def delete_message_for_me(
    message_id: UUID,
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    return await handle_delete_for_self(
        message_id=message_id, viewer=user, msg_service=msg_service, relay=relay
    )


@router.delete("/messages/{message_id}/everyone", response_model=MessageResponse)
async def delete_message_for_everyone(
    message_id: UUID,
    user: User = Depends(current_active_user),
    msg_service: MessageService = Depends(get_message_service),
    relay: RealtimeRelay = Depends(get_relay),
):
    """Only the sender may do this; repeating it is a no-op."""
    return await handle_delete_for_everyone(
        message_id=message_id, requester=user, msg_service=msg_service, relay=relay
    )
