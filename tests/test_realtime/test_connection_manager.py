import uuid

import pytest
from test_helpers import FakeWebSocket

from chatline.realtime.connection_manager import ConnectionManager

pytestmark = pytest.mark.asyncio


async def test_first_connect_and_last_disconnect_are_reported():
    manager = ConnectionManager()
    user_id = uuid.uuid4()
    tab, phone = FakeWebSocket(), FakeWebSocket()

    assert await manager.connect(user_id, tab) is True
    assert await manager.connect(user_id, phone) is False
    assert tab.accepted and phone.accepted
    assert await manager.is_connected(user_id) is True

    assert await manager.disconnect(user_id, tab) is False
    assert await manager.is_connected(user_id) is True
    assert await manager.disconnect(user_id, phone) is True
    assert await manager.is_connected(user_id) is False
    assert await manager.connected_user_ids() == []


async def test_disconnect_unknown_user_is_harmless():
    manager = ConnectionManager()

    assert await manager.disconnect(uuid.uuid4(), FakeWebSocket()) is False


async def test_send_to_user_reaches_every_connection():
    manager = ConnectionManager()
    user_id = uuid.uuid4()
    tab, phone = FakeWebSocket(), FakeWebSocket()
    await manager.connect(user_id, tab)
    await manager.connect(user_id, phone)

    sent = await manager.send_to_user(user_id, {"event": "ping", "data": {}})

    assert sent is True
    assert tab.sent == phone.sent == [{"event": "ping", "data": {}}]


async def test_send_to_offline_user_returns_false():
    manager = ConnectionManager()

    assert await manager.send_to_user(uuid.uuid4(), {"event": "ping"}) is False


async def test_broken_connection_does_not_stop_others():
    manager = ConnectionManager()
    user_id = uuid.uuid4()
    broken, healthy = FakeWebSocket(fail=True), FakeWebSocket()
    await manager.connect(user_id, broken)
    await manager.connect(user_id, healthy)

    assert await manager.send_to_user(user_id, {"event": "ping"}) is True
    assert healthy.sent == [{"event": "ping"}]

    only_broken = uuid.uuid4()
    await manager.connect(only_broken, FakeWebSocket(fail=True))
    assert await manager.send_to_user(only_broken, {"event": "ping"}) is False


async def test_send_to_users_and_broadcast_respect_exclude():
    manager = ConnectionManager()
    alice, bob, carol = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    sockets = {user: FakeWebSocket() for user in (alice, bob)}
    for user, websocket in sockets.items():
        await manager.connect(user, websocket)

    reached = await manager.send_to_users([alice, bob, carol, bob], {"event": "x"}, exclude=alice)
    assert reached == {bob}
    assert sockets[alice].sent == []
    assert sockets[bob].sent == [{"event": "x"}]

    reached = await manager.broadcast({"event": "y"})
    assert reached == {alice, bob}
