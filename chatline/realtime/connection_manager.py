"""
Registry of live WebSocket sessions.

One user may hold several connections (tabs, devices); presence changes are
reported only for the first connection and the last disconnection.
"""

import asyncio
import logging
from typing import Any, Iterable
from uuid import UUID

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    WebSocket connection manager with race condition protection.
    The lock guards the in-memory registry only and is never held while sending.
    """

    def __init__(self):
        # user_id -> list of websockets
        self.active_connections: dict[UUID, list[Any]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: UUID, websocket) -> bool:
        """Accept and register a websocket. Returns True for the user's first one."""
        await websocket.accept()

        async with self._lock:
            connections = self.active_connections.setdefault(user_id, [])
            connections.append(websocket)
            first = len(connections) == 1
        logger.info(f"User {user_id} connected. Total connections: {len(connections)}")
        return first

    async def disconnect(self, user_id: UUID, websocket) -> bool:
        """Forget a websocket. Returns True when the user has no connections left."""
        async with self._lock:
            connections = self.active_connections.get(user_id)
            if connections is None:
                return False
            if websocket in connections:
                connections.remove(websocket)
            # Clean up empty lists
            last = not connections
            if last:
                del self.active_connections[user_id]
        logger.info(f"User {user_id} disconnected")
        return last

    async def is_connected(self, user_id: UUID) -> bool:
        async with self._lock:
            return bool(self.active_connections.get(user_id))

    async def connected_user_ids(self) -> list[UUID]:
        async with self._lock:
            return list(self.active_connections)

    async def send_to_user(self, user_id: UUID, message: dict) -> bool:
        """
        Send message to all connections of a specific user.
        Returns True if message was sent to at least one connection.
        """
        async with self._lock:
            # Copy so sends happen outside the lock
            connections = list(self.active_connections.get(user_id, []))

        if not connections:
            return False

        results = await asyncio.gather(
            *(self._safe_send(connection, message) for connection in connections),
            return_exceptions=True,
        )
        return any(result is True for result in results)

    async def send_to_users(
        self, user_ids: Iterable[UUID], message: dict, exclude: UUID | None = None
    ) -> set[UUID]:
        """Fans ``message`` out to several users; returns the ones reached."""
        targets = [uid for uid in dict.fromkeys(user_ids) if uid != exclude]
        results = await asyncio.gather(
            *(self.send_to_user(uid, message) for uid in targets)
        )
        return {uid for uid, sent in zip(targets, results) if sent}

    async def broadcast(self, message: dict, exclude: UUID | None = None) -> set[UUID]:
        return await self.send_to_users(
            await self.connected_user_ids(), message, exclude=exclude
        )

    async def _safe_send(self, websocket, message: dict) -> bool:
        """Send message with error handling"""
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Error sending realtime event: {e}")
            return False


# Global connection manager instance
manager = ConnectionManager()
