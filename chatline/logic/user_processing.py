import logging
from uuid import UUID

from chatline.models import User
from chatline.realtime.relay import RealtimeRelay
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.user import UserSummary
from chatline.services.exceptions import InvalidInputError
from chatline.services.presence_service import PresenceService

logger = logging.getLogger(__name__)


async def handle_list_users(
    user_repo: UserRepository,
    requesting_user: User,
    participated_with_filter: str | None = None,
) -> list[UserSummary]:
    """
    Lists every user except the requester, optionally only those who share a
    visible conversation with them (``participated_with=me``).

    Raises:
        InvalidInputError: For any filter value other than "me".
    """
    logger.debug(
        f"Handler: Listing users for user {requesting_user.id}. Filter: {participated_with_filter}"
    )

    filter_user_for_participation = None
    if participated_with_filter == "me":
        filter_user_for_participation = requesting_user
    elif participated_with_filter:
        raise InvalidInputError(
            f"Invalid participated_with filter: {participated_with_filter}"
        )

    users_list = await user_repo.list_users(
        exclude_user=requesting_user,
        participated_with_user=filter_user_for_participation,
    )
    logger.info(
        f"Handler: Retrieved {len(users_list)} users for user {requesting_user.id}."
    )
    return [UserSummary.model_validate(u) for u in users_list]


async def handle_user_connected(
    user_id: UUID, presence_service: PresenceService, relay: RealtimeRelay
) -> None:
    await presence_service.mark_online(user_id)
    await relay.user_status(user_id, True)


async def handle_user_disconnected(
    user_id: UUID, presence_service: PresenceService, relay: RealtimeRelay
) -> None:
    last_seen_at = await presence_service.mark_offline(user_id)
    await relay.user_status(user_id, False, last_seen_at)
