import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import create_test_user

from chatline.models import User

pytestmark = pytest.mark.asyncio


async def test_list_users_excludes_self(
    authenticated_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    stranger = create_test_user(username="stranger")
    async with db_test_session_manager() as session:
        async with session.begin():
            session.add(stranger)

    response = await authenticated_client.get("/users")
    assert response.status_code == 200
    usernames = [u["username"] for u in response.json()]
    assert usernames == ["otheruser", "stranger"]
    assert "email" not in response.json()[0]


async def test_list_users_participated_with_me(
    authenticated_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    stranger = create_test_user(username="stranger")
    async with db_test_session_manager() as session:
        async with session.begin():
            session.add(stranger)
    created = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(other_user.id)}
    )
    conversation_id = created.json()["conversation"]["id"]

    response = await authenticated_client.get(
        "/users", params={"participated_with": "me"}
    )
    assert response.status_code == 200
    assert [u["username"] for u in response.json()] == ["otheruser"]

    # Hidden conversations no longer count as shared
    await authenticated_client.delete(f"/conversations/{conversation_id}")
    response = await authenticated_client.get(
        "/users", params={"participated_with": "me"}
    )
    assert response.json() == []


async def test_list_users_invalid_filter(authenticated_client: AsyncClient):
    response = await authenticated_client.get(
        "/users", params={"participated_with": "everyone"}
    )
    assert response.status_code == 400


async def test_users_me(authenticated_client: AsyncClient, logged_in_user: User):
    response = await authenticated_client.get("/users/me")
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(logged_in_user.id)
    assert body["username"] == "testuser"
    assert body["is_online"] is False
