import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from test_helpers import create_test_user

from chatline.models import Conversation, Message, Participant, User

pytestmark = pytest.mark.asyncio


async def add_user(
    db_test_session_manager: async_sessionmaker[AsyncSession], username: str
) -> User:
    user = create_test_user(username=username)
    async with db_test_session_manager() as session:
        async with session.begin():
            session.add(user)
    return user


async def count_rows(db_test_session_manager, column) -> int:
    async with db_test_session_manager() as session:
        return (await session.execute(select(func.count(column)))).scalar_one()


async def test_create_or_get_private_conversation(
    authenticated_client: AsyncClient,
    other_client: AsyncClient,
    logged_in_user: User,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    response = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(other_user.id)}
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["created"] is True
    conversation = body["conversation"]
    assert conversation["type"] == "private"
    assert {p["id"] for p in conversation["participants"]} == {
        str(logged_in_user.id),
        str(other_user.id),
    }
    assert conversation["me"]["user_id"] == str(logged_in_user.id)

    again = await other_client.post(
        "/conversations/private", json={"target_user_id": str(logged_in_user.id)}
    )
    assert again.status_code == 200
    assert again.json()["created"] is False
    assert again.json()["conversation"]["id"] == conversation["id"]
    assert await count_rows(db_test_session_manager, Conversation.id) == 1


async def test_private_conversation_with_self(
    authenticated_client: AsyncClient, logged_in_user: User
):
    response = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(logged_in_user.id)}
    )
    assert response.status_code == 400


async def test_private_conversation_unknown_user(authenticated_client: AsyncClient):
    response = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(uuid.uuid4())}
    )
    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


async def test_create_private_conversation_with_first_message(
    authenticated_client: AsyncClient, other_user: User
):
    response = await authenticated_client.post(
        "/conversations",
        json={"type": "private", "recipient_id": str(other_user.id), "text": "hello!"},
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"]["text"] == "hello!"
    assert body["conversation"]["last_message"]["id"] == body["message"]["id"]


async def test_create_private_conversation_requires_message(
    authenticated_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    response = await authenticated_client.post(
        "/conversations", json={"type": "private", "recipient_id": str(other_user.id)}
    )
    assert response.status_code == 400
    assert await count_rows(db_test_session_manager, Conversation.id) == 0


async def test_create_group_conversation(
    authenticated_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    third = await add_user(db_test_session_manager, "thirduser")

    response = await authenticated_client.post(
        "/conversations",
        json={
            "type": "group",
            "participant_ids": [str(other_user.id), str(third.id)],
            "group_name": "Trio",
            "text": "welcome",
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["conversation"]["type"] == "group"
    assert body["conversation"]["group_name"] == "Trio"
    assert len(body["conversation"]["participants"]) == 3
    assert body["message"]["text"] == "welcome"


async def test_create_group_conversation_too_small(
    authenticated_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    response = await authenticated_client.post(
        "/conversations",
        json={
            "type": "group",
            "participant_ids": [str(other_user.id)],
            "group_name": "Duo",
            "text": "hi",
        },
    )
    assert response.status_code == 400
    assert await count_rows(db_test_session_manager, Conversation.id) == 0
    assert await count_rows(db_test_session_manager, Participant.id) == 0
    assert await count_rows(db_test_session_manager, Message.id) == 0


async def test_create_conversation_unknown_type(authenticated_client: AsyncClient):
    response = await authenticated_client.post(
        "/conversations", json={"type": "channel", "participant_ids": []}
    )
    assert response.status_code == 422


async def test_list_and_get_conversation(
    authenticated_client: AsyncClient, other_user: User
):
    created = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(other_user.id)}
    )
    conversation_id = created.json()["conversation"]["id"]

    listed = await authenticated_client.get("/conversations")
    assert listed.status_code == 200
    assert [c["id"] for c in listed.json()] == [conversation_id]

    fetched = await authenticated_client.get(f"/conversations/{conversation_id}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == conversation_id

    missing = await authenticated_client.get(f"/conversations/{uuid.uuid4()}")
    assert missing.status_code == 404


async def test_delete_conversation_is_per_user(
    authenticated_client: AsyncClient, other_client: AsyncClient, other_user: User
):
    created = await authenticated_client.post(
        "/conversations",
        json={"type": "private", "recipient_id": str(other_user.id), "text": "hi"},
    )
    conversation_id = created.json()["conversation"]["id"]

    deleted = await authenticated_client.delete(f"/conversations/{conversation_id}")
    assert deleted.status_code == 200
    deleted_at = deleted.json()["deleted_at"]

    # Repeating the delete is a no-op with the same watermark
    repeated = await authenticated_client.delete(f"/conversations/{conversation_id}")
    assert repeated.status_code == 200
    assert repeated.json()["deleted_at"] == deleted_at

    mine = await authenticated_client.get(f"/conversations/{conversation_id}")
    assert mine.status_code == 404
    theirs = await other_client.get(f"/conversations/{conversation_id}")
    assert theirs.status_code == 200
    assert theirs.json()["last_message"]["text"] == "hi"


async def test_delete_conversation_not_participant(
    authenticated_client: AsyncClient,
    other_client: AsyncClient,
    other_user: User,
    db_test_session_manager: async_sessionmaker[AsyncSession],
):
    third = await add_user(db_test_session_manager, "thirduser")
    created = await other_client.post(
        "/conversations/private", json={"target_user_id": str(third.id)}
    )
    conversation_id = created.json()["conversation"]["id"]

    response = await authenticated_client.delete(f"/conversations/{conversation_id}")
    assert response.status_code == 403


async def test_update_participant_settings(
    authenticated_client: AsyncClient, other_user: User
):
    created = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(other_user.id)}
    )
    conversation_id = created.json()["conversation"]["id"]

    response = await authenticated_client.put(
        f"/conversations/{conversation_id}/participants/me",
        json={"archived": True, "muted_until": "2030-01-01T00:00:00Z"},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["archived_at"] is not None
    assert body["muted_until"].startswith("2030-01-01T00:00:00")
    assert body["blocked"] is False


async def test_blocked_conversation_refuses_messages(
    authenticated_client: AsyncClient,
    other_client: AsyncClient,
    other_user: User,
    logged_in_user: User,
):
    created = await authenticated_client.post(
        "/conversations/private", json={"target_user_id": str(other_user.id)}
    )
    conversation_id = created.json()["conversation"]["id"]

    blocked = await authenticated_client.put(
        f"/conversations/{conversation_id}/participants/me", json={"blocked": True}
    )
    assert blocked.status_code == 200
    assert blocked.json()["blocked"] is True

    send = await other_client.post(
        f"/conversations/{conversation_id}/messages", json={"text": "let me in"}
    )
    assert send.status_code == 403

    restart = await other_client.post(
        "/conversations/private", json={"target_user_id": str(logged_in_user.id)}
    )
    assert restart.status_code == 403
