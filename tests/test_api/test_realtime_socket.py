"""
Drives WS /ws through Starlette's TestClient. The app and the database live on
the client's own event loop, so these tests are synchronous and use a file
database instead of the shared in-memory fixtures.
"""

import time
import uuid
from types import SimpleNamespace

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from chatline import db
from chatline.auth_config import cookie_transport
from chatline.db import get_db_session
from chatline.main import app
from chatline.models import metadata
from chatline.realtime.connection_manager import ConnectionManager
from chatline.realtime.relay import RealtimeRelay, get_relay

PASSWORD = "password123"


@pytest.fixture
def socket_env(tmp_path, monkeypatch):
    database_file = tmp_path / "chat.db"
    sync_engine = create_engine(f"sqlite:///{database_file}")
    metadata.create_all(sync_engine)
    sync_engine.dispose()

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_file}", poolclass=AsyncAdaptedQueuePool
    )
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db_session():
        async with session_maker() as session:
            yield session

    connection_manager = ConnectionManager()
    relay = RealtimeRelay(connection_manager)

    # The startup health check inspects the module-level engine
    monkeypatch.setattr(db, "engine", engine)
    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_relay] = lambda: relay
    try:
        with TestClient(app) as client:
            yield SimpleNamespace(
                client=client, engine=engine, manager=connection_manager
            )
            client.portal.call(engine.dispose)
    finally:
        app.dependency_overrides.clear()


def register(client: TestClient, username: str) -> SimpleNamespace:
    email = f"{username}@example.com"
    res = client.post(
        "/auth/register",
        json={"email": email, "password": PASSWORD, "username": username},
    )
    assert res.status_code == 201, res.text
    user_id = uuid.UUID(res.json()["id"])

    res = client.post(
        "/auth/bearer/login", data={"username": email, "password": PASSWORD}
    )
    assert res.status_code == 200, res.text
    token = res.json()["access_token"]
    return SimpleNamespace(
        id=user_id, token=token, headers={"Authorization": f"Bearer {token}"}
    )


def receive_event(websocket, name: str) -> dict:
    """Reads frames until one named ``name`` arrives and returns its data."""
    while True:
        frame = websocket.receive_json()
        if frame["event"] == name:
            return frame["data"]


def wait_until(condition, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.02)


def connection_count(manager: ConnectionManager, user_id: uuid.UUID) -> int:
    return len(manager.active_connections.get(user_id, []))


def test_socket_without_token_is_rejected(socket_env):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with socket_env.client.websocket_connect("/ws"):
            pass

    assert exc_info.value.code == 1008


def test_socket_with_invalid_token_is_rejected(socket_env):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with socket_env.client.websocket_connect("/ws?token=not-a-jwt"):
            pass

    assert exc_info.value.code == 1008


def test_query_token_and_cookie_both_authenticate(socket_env):
    client = socket_env.client
    alice = register(client, "alice")
    bob = register(client, "bob")
    res = client.post(
        "/conversations/private",
        json={"target_user_id": str(bob.id)},
        headers=alice.headers,
    )
    assert res.status_code == 201, res.text
    conversation_id = res.json()["conversation"]["id"]

    with client.websocket_connect(f"/ws?token={alice.token}") as alice_ws:
        receive_event(alice_ws, "user:status")
        with client.websocket_connect(
            "/ws", headers={"Cookie": f"{cookie_transport.cookie_name}={bob.token}"}
        ) as bob_ws:
            receive_event(bob_ws, "user:status")
            online = receive_event(alice_ws, "user:online")
            assert online["user_id"] == str(bob.id)

            alice_ws.send_json(
                {
                    "event": "send:message",
                    "data": {"conversation_id": conversation_id, "text": "hi bob"},
                    "ack": "a1",
                }
            )
            ack = receive_event(alice_ws, "ack")
            assert ack["ack"] == "a1"
            assert ack["ok"] is True
            assert ack["data"]["text"] == "hi bob"

            received = receive_event(bob_ws, "message:received")
            assert received["message"]["text"] == "hi bob"
            notification = receive_event(bob_ws, "notification:new_message")
            assert notification["conversation_id"] == conversation_id


def test_idle_socket_holds_no_database_connection(socket_env):
    client = socket_env.client
    alice = register(client, "alice")
    before = socket_env.engine.pool.checkedout()

    with client.websocket_connect(f"/ws?token={alice.token}") as websocket:
        receive_event(websocket, "user:status")
        websocket.send_json(
            {
                "event": "typing",
                "data": {"conversation_id": str(uuid.uuid4())},
                "ack": "t1",
            }
        )
        ack = receive_event(websocket, "ack")
        assert ack["ok"] is False

        assert socket_env.engine.pool.checkedout() == before


def test_malformed_frames_are_nacked(socket_env):
    client = socket_env.client
    alice = register(client, "alice")

    with client.websocket_connect(f"/ws?token={alice.token}") as websocket:
        receive_event(websocket, "user:status")

        websocket.send_text("{not json")
        ack = receive_event(websocket, "ack")
        assert ack["ok"] is False
        assert ack["ack"] is None
        assert ack["message"].startswith("Malformed frame")

        websocket.send_bytes(b"\x00\x01")
        ack = receive_event(websocket, "ack")
        assert ack["ok"] is False
        assert ack["message"].startswith("Malformed frame")

        # The connection survives both
        websocket.send_json({"event": "nope", "ack": "n1"})
        ack = receive_event(websocket, "ack")
        assert ack == {
            "ack": "n1",
            "ok": False,
            "message": "Unknown event 'nope'.",
            "data": None,
        }


def test_presence_follows_first_connect_and_last_disconnect(socket_env):
    client = socket_env.client
    manager = socket_env.manager
    alice = register(client, "alice")

    def me() -> dict:
        res = client.get("/users/me", headers=alice.headers)
        assert res.status_code == 200, res.text
        return res.json()

    assert me()["is_online"] is False

    with client.websocket_connect(f"/ws?token={alice.token}") as first_tab:
        receive_event(first_tab, "user:status")
        assert me()["is_online"] is True

        with client.websocket_connect(f"/ws?token={alice.token}") as second_tab:
            wait_until(lambda: connection_count(manager, alice.id) == 2)
            second_tab.close()
            wait_until(lambda: connection_count(manager, alice.id) == 1)

        # Closing one of two tabs leaves the user online
        assert me()["is_online"] is True
        assert me()["last_seen_at"] is None

        first_tab.close()
        wait_until(lambda: me()["is_online"] is False)

    assert connection_count(manager, alice.id) == 0
    assert me()["last_seen_at"] is not None
