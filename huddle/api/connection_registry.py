"""
Connection registry for live WebSocket sessions.

Keeps two indexes over live connections: by authenticated user (one user may
hold several connections, e.g. multiple devices or tabs) and by activity room
(one room has any number of subscribers). One registry is created per
application in ``main.py`` and injected into the session handler and the
dispatcher.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set
from uuid import uuid4
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """
    Per-connection session state.

    Hashed and compared by identity, so each live transport is a distinct
    registry entry.

    Attributes:
        websocket: Transport handle (anything with ``send_json``, ``close``
            and Starlette's ``client_state`` / ``application_state``)
        connection_id: Identifier used in logs
        user_id: Authenticated user, None until an auth frame is accepted
        subscribed_rooms: Rooms this connection has been granted
        connected_at: When the transport was accepted
    """
    websocket: Any
    connection_id: str = field(default_factory=lambda: uuid4().hex[:12])
    user_id: Optional[int] = None
    subscribed_rooms: Set[int] = field(default_factory=set)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_open(self) -> bool:
        """True while both sides of the transport are connected."""
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, payload: Dict[str, Any]) -> None:
        await self.websocket.send_json(payload)


class ConnectionRegistry:
    """
    Tracks live connections by user and by room.

    Every method is synchronous and never suspends, so on a single event
    loop the indexes need no locking. Empty index entries are deleted
    eagerly; after ``unregister_connection`` the registry holds no
    reference to the connection.
    """

    def __init__(self):
        """Initialize registry with empty indexes."""
        # {user_id: Set[Connection]} - all connections per user
        self.user_connections: Dict[int, Set[Connection]] = {}

        # {room_id: Set[Connection]} - subscribers per room
        self.room_connections: Dict[int, Set[Connection]] = {}

        # {Connection: user_id} - reverse lookup for cleanup
        self.connection_to_user: Dict[Connection, int] = {}

        # {Connection: Set[room_id]} - reverse lookup for cleanup
        self.connection_rooms: Dict[Connection, Set[int]] = {}

        logger.info("ConnectionRegistry initialized")

    def register_user_connection(self, user_id: int, connection: Connection) -> None:
        """
        Add a connection to a user's connection set.

        Args:
            user_id: Authenticated user ID
            connection: Connection to register
        """
        self.user_connections.setdefault(user_id, set()).add(connection)
        self.connection_to_user[connection] = user_id

        logger.info(
            f"User {user_id} registered connection {connection.connection_id} "
            f"(total connections: {len(self.user_connections[user_id])})"
        )

    def subscribe_to_room(self, room_id: int, connection: Connection) -> None:
        """
        Add a connection to a room's subscriber set.

        Does not authorize: callers must have passed the access check first.

        Args:
            room_id: Activity (room) ID
            connection: Connection to subscribe
        """
        self.room_connections.setdefault(room_id, set()).add(connection)
        self.connection_rooms.setdefault(connection, set()).add(room_id)
        logger.debug(f"Connection {connection.connection_id} subscribed to room {room_id}")

    def unsubscribe_from_room(self, room_id: int, connection: Connection) -> None:
        """
        Remove a connection from a single room's subscriber set.

        Args:
            room_id: Activity (room) ID
            connection: Connection to unsubscribe
        """
        self._discard(self.room_connections, room_id, connection)
        self._discard(self.connection_rooms, connection, room_id)
        logger.debug(f"Connection {connection.connection_id} unsubscribed from room {room_id}")

    def unregister_connection(self, connection: Connection) -> None:
        """
        Remove a connection from every index.

        Safe for connections that never authenticated or never subscribed.

        Args:
            connection: Connection to remove
        """
        user_id = self.connection_to_user.pop(connection, None)
        if user_id is not None:
            self._discard(self.user_connections, user_id, connection)

        rooms = self.connection_rooms.pop(connection, set())
        for room_id in rooms:
            self._discard(self.room_connections, room_id, connection)

        logger.info(
            f"Connection {connection.connection_id} unregistered "
            f"(user: {user_id}, rooms: {sorted(rooms)})"
        )

    def get_connections_for_user(self, user_id: int) -> Set[Connection]:
        """
        Snapshot of a user's live connections.

        Returns:
            New set; empty if the user has no connection
        """
        return set(self.user_connections.get(user_id, ()))

    def get_connections_for_room(self, room_id: int) -> Set[Connection]:
        """
        Snapshot of a room's subscribers.

        Returns:
            New set; empty if nobody is subscribed
        """
        return set(self.room_connections.get(room_id, ()))

    def get_connection_count(self) -> int:
        """Total number of authenticated connections."""
        return len(self.connection_to_user)

    def get_user_count(self) -> int:
        """Number of unique users currently connected."""
        return len(self.user_connections)

    def get_subscription_count(self) -> int:
        """Total number of (connection, room) subscriptions."""
        return sum(len(connections) for connections in self.room_connections.values())

    @staticmethod
    def _discard(index: Dict[Any, Set[Any]], key: Any, member: Any) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(member)
        if not members:
            del index[key]
