from datetime import datetime
from uuid import UUID

from chatline.models import User
from chatline.schemas.inbox import InboxPage
from chatline.services.inbox_service import InboxService


async def handle_build_inbox(
    user: User,
    inbox_service: InboxService,
    limit: int | None = None,
    after: datetime | None = None,
    after_id: UUID | None = None,
) -> InboxPage:
    return await inbox_service.build_inbox(
        user, limit=limit, after=after, after_id=after_id
    )
