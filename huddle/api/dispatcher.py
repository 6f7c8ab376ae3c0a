"""
Broadcast and notification dispatcher.

Fans room chat frames and per-user notifications out to every live
connection of the target audience. Delivery is best-effort: closed
connections are skipped, a failed send is logged and does not affect the
other recipients, and nothing is queued or retried.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Union
from pydantic import BaseModel
from huddle.api.connection_registry import Connection, ConnectionRegistry
from huddle.api.metrics import (
    websocket_frames_sent_total, websocket_send_failures_total, notifications_total
)
from huddle.api.schemas import NotificationFrame, NotificationRequest, encode_frame

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, dict]


class Dispatcher:
    """
    Delivers frames to the live connections tracked by a ConnectionRegistry.

    Features:
    - Room broadcast to the complete current subscriber set
    - User notification to every device the user has connected
    - Per-room sequencing so all subscribers see room messages in
      persistence order
    """

    def __init__(self, registry: ConnectionRegistry):
        """
        Initialize dispatcher.

        Args:
            registry: Registry to resolve audiences from
        """
        self.registry = registry
        # {room_id: Lock} and {room_id: holders+waiters}; entries dropped when unused
        self._room_locks: Dict[int, asyncio.Lock] = {}
        self._room_lock_users: Dict[int, int] = {}

    @asynccontextmanager
    async def room_sequence(self, room_id: int) -> AsyncIterator[None]:
        """
        Serialize persist-and-broadcast sections for one room.

        Args:
            room_id: Activity (room) ID
        """
        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        self._room_lock_users[room_id] = self._room_lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._room_lock_users[room_id] -= 1
            if self._room_lock_users[room_id] == 0:
                del self._room_lock_users[room_id]
                del self._room_locks[room_id]

    async def broadcast_to_room(self, room_id: int, payload: Payload) -> int:
        """
        Send a payload to every open connection subscribed to a room.

        Args:
            room_id: Activity (room) ID
            payload: Outbound frame model or already-encoded dict

        Returns:
            Number of connections the payload was delivered to
        """
        connections = self.registry.get_connections_for_room(room_id)
        delivered = await self._fan_out(connections, payload)

        if delivered > 0:
            logger.info(f"Broadcast to room {room_id}: {delivered}/{len(connections)} connections")
        else:
            logger.debug(f"Broadcast to room {room_id} reached no live subscriber")

        return delivered

    async def notify_user(self, user_id: int, payload: Payload) -> int:
        """
        Send a payload to every open connection of a user.

        A user without live connections is a no-op.

        Args:
            user_id: Recipient user ID
            payload: Outbound frame model or already-encoded dict

        Returns:
            Number of connections the payload was delivered to
        """
        connections = self.registry.get_connections_for_user(user_id)
        if not connections:
            logger.debug(f"No active connections for user {user_id}")
            return 0

        return await self._fan_out(connections, payload)

    async def send_notification(self, request: NotificationRequest) -> int:
        """
        Entry point for the REST tier: deliver a notification to a user.

        Stamps a fresh notification ID and timestamp on each call. The
        notification is dropped if the recipient is offline.

        Args:
            request: Recipient, message text and structured data

        Returns:
            Number of connections the notification was delivered to
        """
        frame = NotificationFrame(
            recipient_id=request.recipient_id,
            message=request.message,
            data=request.data
        )
        delivered = await self.notify_user(request.recipient_id, frame)

        outcome = "delivered" if delivered else "dropped"
        notifications_total.labels(outcome=outcome, instance="api").inc()
        logger.info(
            f"Notification {frame.id} ({frame.data.get('type')}) for user "
            f"{request.recipient_id} {outcome} ({delivered} connections)"
        )
        return delivered

    async def _fan_out(self, connections: Iterable[Connection], payload: Payload) -> int:
        message = encode_frame(payload) if isinstance(payload, BaseModel) else payload
        frame_type = message.get("type", "unknown")

        targets = [connection for connection in connections if connection.is_open]
        results = await asyncio.gather(
            *(self._send_one(connection, message, frame_type) for connection in targets)
        )
        return sum(results)

    async def _send_one(self, connection: Connection, message: dict, frame_type: str) -> bool:
        try:
            await connection.send_json(message)
        except Exception as e:
            websocket_send_failures_total.labels(frame_type=frame_type, instance="api").inc()
            logger.warning(
                f"Error sending {frame_type} to connection {connection.connection_id} "
                f"(user {connection.user_id}): {e}"
            )
            return False

        websocket_frames_sent_total.labels(frame_type=frame_type, instance="api").inc()
        return True
