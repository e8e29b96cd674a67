import logging

from fastapi import APIRouter, Depends, Query

from chatline.api.common import BaseRouter
from chatline.auth_config import current_active_user
from chatline.logic.user_processing import handle_list_users
from chatline.models import User
from chatline.repositories.dependencies import get_user_repository
from chatline.repositories.user_repository import UserRepository
from chatline.schemas.user import UserSummary

logger = logging.getLogger(__name__)
users_router_instance = APIRouter()
router = BaseRouter(router=users_router_instance, default_tags=["users"])


@router.get("/users", response_model=list[UserSummary])
async def list_users(
    participated_with: str | None = Query(None),
    user: User = Depends(current_active_user),
    user_repo: UserRepository = Depends(get_user_repository),
):
    """Lists other users; ``participated_with=me`` narrows to known contacts."""
    return await handle_list_users(
        user_repo=user_repo,
        requesting_user=user,
        participated_with_filter=participated_with,
    )
