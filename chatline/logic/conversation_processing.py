import logging
from uuid import UUID

# Logic related to processing conversation actions, shared by the REST routes
# and the realtime dispatcher so both transports behave identically.
from chatline.models import Conversation, User
from chatline.realtime.relay import RealtimeRelay
from chatline.schemas.conversation import (
    ConversationCreateResponse,
    ConversationDeletedResponse,
    ConversationResponse,
    GroupConversationCreate,
    PrivateConversationCreate,
)
from chatline.schemas.participant import ParticipantResponse, ParticipantSettingsUpdate
from chatline.schemas.user import UserSummary
from chatline.services import visibility
from chatline.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)


def build_conversation_response(
    conversation: Conversation, viewer_id: UUID
) -> ConversationResponse:
    me = conversation.participant_for(viewer_id)
    return ConversationResponse(
        id=conversation.id,
        type=conversation.type,
        group_name=conversation.group_name,
        group_photo=conversation.group_photo,
        created_by_user_id=conversation.created_by_user_id,
        participants=[
            UserSummary.model_validate(p.user) for p in conversation.participants
        ],
        last_message=visibility.last_message_for_viewer(conversation, me)
        if me
        else None,
        last_activity_at=conversation.last_activity_at,
        created_at=conversation.created_at,
        me=ParticipantResponse.model_validate(me) if me else None,
    )


async def handle_create_or_get_private(
    target_user_id: UUID,
    requesting_user: User,
    conv_service: ConversationService,
) -> ConversationCreateResponse:
    """Returns the pair's live private thread or a freshly created one."""
    user_id = requesting_user.id
    conversation, created = await conv_service.create_or_get_private_conversation(
        requester=requesting_user, target_user_id=target_user_id
    )
    return ConversationCreateResponse(
        conversation=build_conversation_response(conversation, user_id),
        created=created,
    )


async def handle_create_conversation(
    payload: PrivateConversationCreate | GroupConversationCreate,
    creator_user: User,
    conv_service: ConversationService,
    relay: RealtimeRelay,
) -> ConversationCreateResponse:
    """
    Handles creation of a private or group conversation.

    Raises:
        InvalidInputError: Missing first message, bad member list or group name.
        UserNotFoundError: The target or a member does not exist.
        NotAuthorizedError: The pair is blocked or the peer hid the thread.
        ConflictError: A private thread is in an inconsistent state.
    """
    user_id = creator_user.id
    if isinstance(payload, PrivateConversationCreate):
        conversation, message, created = (
            await conv_service.create_private_conversation_with_message(
                creator=creator_user,
                target_user_id=payload.recipient_id,
                text=payload.text,
            )
        )
    else:
        conversation, message = await conv_service.create_group_conversation(
            creator=creator_user,
            member_ids=payload.participant_ids,
            group_name=payload.group_name,
            group_photo=payload.group_photo,
            text=payload.text,
            attachments=[a.model_dump(mode="json") for a in payload.attachments],
        )
        created = True

    if message is not None:
        await relay.message_created(conversation, message)

    return ConversationCreateResponse(
        conversation=build_conversation_response(conversation, user_id),
        message=visibility.visible_content(message) if message else None,
        created=created,
    )


async def handle_list_conversations(
    user: User, conv_service: ConversationService
) -> list[ConversationResponse]:
    user_id = user.id
    conversations = await conv_service.list_for_user(user)
    return [build_conversation_response(c, user_id) for c in conversations]


async def handle_get_conversation(
    conversation_id: UUID, requesting_user: User, conv_service: ConversationService
) -> ConversationResponse:
    """Retrieves details for a specific conversation if the user still sees it."""
    logger.debug(
        f"Handler: Getting conversation {conversation_id} for user {requesting_user.id}"
    )
    conversation, _ = await conv_service.get_conversation(
        conversation_id, requesting_user
    )
    return build_conversation_response(conversation, requesting_user.id)


async def handle_delete_conversation(
    conversation_id: UUID,
    user: User,
    conv_service: ConversationService,
    relay: RealtimeRelay,
) -> ConversationDeletedResponse:
    user_id = user.id
    _, participant, changed = await conv_service.soft_delete_for_user(
        conversation_id, user
    )
    if changed:
        await relay.chat_deleted(user_id, conversation_id)
    return ConversationDeletedResponse(
        conversation_id=conversation_id, deleted_at=participant.deleted_at
    )


async def handle_update_participant_settings(
    conversation_id: UUID,
    update: ParticipantSettingsUpdate,
    user: User,
    conv_service: ConversationService,
) -> ParticipantResponse:
    participant = await conv_service.update_participant_settings(
        conversation_id,
        user,
        archived=update.archived,
        muted_until=update.muted_until,
        unmute=update.unmute,
        blocked=update.blocked,
    )
    return ParticipantResponse.model_validate(participant)
