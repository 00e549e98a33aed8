"""
Real-time notification push over WebSockets.

``NotificationHub`` keeps the open sockets of each user in this process.
The inbox table stays the source of truth: a push that cannot be
delivered is dropped and the client catches up by listing its
notifications.
"""
import logging
from collections import defaultdict

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationHub:
    def __init__(self) -> None:
        self._connections: dict[int, set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[user_id].add(websocket)
        logger.debug("WebSocket opened for user=%s (%d open)", user_id, len(self._connections[user_id]))

    def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]

    def connection_count(self, user_id: int | None = None) -> int:
        if user_id is not None:
            return len(self._connections.get(user_id, ()))
        return sum(len(sockets) for sockets in self._connections.values())

    async def publish(self, user_id: int, message: dict) -> int:
        """Send *message* to every open socket of *user_id*; returns how many got it."""
        delivered = 0
        for websocket in list(self._connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
            except Exception as exc:
                logger.info("Dropping WebSocket of user=%s: %s", user_id, exc)
                self.disconnect(user_id, websocket)
                continue
            delivered += 1
        return delivered

    async def publish_many(self, user_ids, message: dict) -> int:
        delivered = 0
        for user_id in user_ids:
            delivered += await self.publish(user_id, message)
        return delivered


# Module-level singleton shared by the WebSocket route and the fan-out.
hub = NotificationHub()
