import json
import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, Query, WebSocket, status
from fastapi_users.db import SQLAlchemyUserDatabase

from chatline.auth_config import UserManager, cookie_transport, get_strategy
from chatline.db import get_db_session
from chatline.models import User
from chatline.realtime.dispatcher import EventDispatcher, SessionFactory
from chatline.realtime.relay import RealtimeRelay, get_relay

logger = logging.getLogger(__name__)
router = APIRouter(tags=["realtime"])


async def authenticate(token: str, session_factory: SessionFactory) -> User | None:
    """Resolves a JWT to its user in a session closed before the socket is accepted."""
    async with asynccontextmanager(session_factory)() as session:
        user_manager = UserManager(SQLAlchemyUserDatabase(session, User))
        return await get_strategy().read_token(token, user_manager)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
    relay: RealtimeRelay = Depends(get_relay),
):
    """Bidirectional event channel. Authenticates with ?token= or the auth cookie."""
    # Honour test overrides of the session dependency, as FastAPI would
    session_factory = websocket.app.dependency_overrides.get(
        get_db_session, get_db_session
    )

    token = token or websocket.cookies.get(cookie_transport.cookie_name)
    user = await authenticate(token, session_factory) if token else None
    if user is None or not user.is_active:
        logger.info("Rejected realtime connection without a valid token")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    user_id = user.id

    manager = relay.manager
    dispatcher = EventDispatcher(session_factory=session_factory, relay=relay)

    if await manager.connect(user_id, websocket):
        await dispatcher.user_connected(user_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.debug(f"Realtime connection of user {user_id} closed by client")
                break

            # Binary frames and invalid JSON are nacked as malformed
            raw = None
            if message.get("text") is not None:
                try:
                    raw = json.loads(message["text"])
                except json.JSONDecodeError:
                    raw = None
            await dispatcher.dispatch(websocket, user_id, raw)
    finally:
        if await manager.disconnect(user_id, websocket):
            await dispatcher.user_disconnected(user_id)
