from fastapi import Depends

from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.dependencies import (
    get_conversation_repository,
    get_message_repository,
    get_participant_repository,
    get_user_repository,
)
from chatline.repositories.message_repository import MessageRepository
from chatline.repositories.participant_repository import ParticipantRepository
from chatline.repositories.user_repository import UserRepository

from .conversation_service import ConversationService
from .inbox_service import InboxService
from .message_service import MessageService


def get_conversation_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    part_repo: ParticipantRepository = Depends(get_participant_repository),
    msg_repo: MessageRepository = Depends(get_message_repository),
    user_repo: UserRepository = Depends(get_user_repository),
) -> ConversationService:
    """Provides an instance of the ConversationService with its dependencies."""
    return ConversationService(
        conversation_repository=conv_repo,
        participant_repository=part_repo,
        message_repository=msg_repo,
        user_repository=user_repo,
    )


def get_message_service(
    msg_repo: MessageRepository = Depends(get_message_repository),
    part_repo: ParticipantRepository = Depends(get_participant_repository),
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    conv_service: ConversationService = Depends(get_conversation_service),
) -> MessageService:
    """Provides an instance of the MessageService."""
    return MessageService(
        message_repository=msg_repo,
        participant_repository=part_repo,
        conversation_repository=conv_repo,
        conversation_service=conv_service,
    )


def get_inbox_service(
    conv_repo: ConversationRepository = Depends(get_conversation_repository),
    msg_repo: MessageRepository = Depends(get_message_repository),
) -> InboxService:
    """Provides an instance of the InboxService."""
    return InboxService(conversation_repository=conv_repo, message_repository=msg_repo)
