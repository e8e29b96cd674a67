import logging
from datetime import datetime
from uuid import UUID

from chatline.core.config import settings
from chatline.models import Conversation, User
from chatline.repositories.conversation_repository import ConversationRepository
from chatline.repositories.message_repository import MessageRepository
from chatline.schemas.conversation import ConversationType
from chatline.schemas.inbox import InboxItem, InboxPage
from chatline.schemas.participant import ParticipantResponse
from chatline.schemas.user import UserSummary

from . import visibility
from .message_service import clamp_limit

logger = logging.getLogger(__name__)


class InboxService:
    def __init__(
        self,
        conversation_repository: ConversationRepository,
        message_repository: MessageRepository,
    ):
        self.conv_repo = conversation_repository
        self.msg_repo = message_repository

    async def _build_item(self, conversation: Conversation, viewer_id: UUID) -> InboxItem:
        me = conversation.participant_for(viewer_id)
        others = [
            UserSummary.model_validate(p.user)
            for p in conversation.participants
            if p.user_id != viewer_id
        ]
        is_private = conversation.type == ConversationType.PRIVATE

        unread = await self.msg_repo.get_last_unread_message(
            conversation.id, viewer_id, watermark=me.hide_messages_before
        )
        return InboxItem(
            conversation_id=conversation.id,
            type=conversation.type,
            group_name=conversation.group_name,
            group_photo=conversation.group_photo,
            peer=others[0] if is_private and others else None,
            members=[] if is_private else others,
            last_message=visibility.last_message_for_viewer(conversation, me),
            last_unread_message=visibility.visible_content(unread) if unread else None,
            last_activity_at=conversation.last_activity_at,
            created_at=conversation.created_at,
            me=ParticipantResponse.model_validate(me),
        )

    async def build_inbox(
        self,
        user: User,
        limit: int | None = None,
        after: datetime | None = None,
        after_id: UUID | None = None,
    ) -> InboxPage:
        """Visible conversations, most recently active first, keyset-paginated."""
        viewer_id = user.id
        limit = clamp_limit(limit, settings.INBOX_PAGE_SIZE)

        rows = await self.conv_repo.list_inbox_page(
            viewer_id, limit, after=after, after_id=after_id
        )
        has_more = len(rows) > limit
        page = list(rows[:limit])

        items = [await self._build_item(c, viewer_id) for c in page]
        last = page[-1] if page else None
        logger.debug(f"Built inbox page of {len(items)} items for user {viewer_id}.")
        return InboxPage(
            items=items,
            has_more=has_more,
            next_cursor=last.last_activity_at if has_more else None,
            next_cursor_id=last.id if has_more else None,
        )
