"""
Per-connection session protocol handler.

Drives one WebSocket connection through its states:

    unauthenticated --auth--> authenticated (+ zero or more room subscriptions)

Inbound frames:
    - auth: bind the claimed user ID (no credential check at this layer),
      register the connection, acknowledge. A second auth is ignored.
    - subscribe: access check, then register the subscription and reply with
      the room's recent history; denial is reported with a failure frame.
    - chat: access is checked again on every send, then the message is
      persisted and broadcast to the room. Denied sends are dropped silently.
    - anything else: discarded and logged; the connection stays open.

The endpoint feeds frames one at a time and awaits each to completion, so
frames from the same connection never interleave.
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar
from pydantic import BaseModel, ValidationError
from huddle.api.connection_registry import Connection, ConnectionRegistry
from huddle.api.dispatcher import Dispatcher
from huddle.api.metrics import (
    websocket_frames_received_total, websocket_frames_sent_total,
    websocket_frames_dropped_total, chat_messages_persisted_total
)
from huddle.api.schemas import (
    AuthAck, AuthFrame, ChatBroadcast, ChatFrame, ChatMessagePayload, ErrorFrame,
    SubscribeAccepted, SubscribeFrame, SubscribeRejected, encode_frame, parse_inbound_frame
)
from huddle.core.config import settings
from huddle.services.storage import StorageError, StorageGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

NOT_AUTHENTICATED = "Not authenticated"
NOT_AUTHORIZED = "Not authorized to join this chat"


class SessionHandler:
    """
    Protocol state machine for a single connection.

    Args:
        connection: Session state of the connection being served
        registry: Shared connection registry
        dispatcher: Shared broadcast/notification dispatcher
        storage: Storage gateway for access checks and messages
        recent_message_limit: History window sent on subscribe
        storage_timeout: Seconds before a storage call is abandoned
        max_message_length: Longest accepted chat content
    """

    def __init__(
        self,
        connection: Connection,
        registry: ConnectionRegistry,
        dispatcher: Dispatcher,
        storage: StorageGateway,
        recent_message_limit: int = settings.recent_message_limit,
        storage_timeout: float = settings.storage_timeout_seconds,
        max_message_length: int = settings.max_message_length
    ):
        self.connection = connection
        self.registry = registry
        self.dispatcher = dispatcher
        self.storage = storage
        self.recent_message_limit = recent_message_limit
        self.storage_timeout = storage_timeout
        self.max_message_length = max_message_length
        self._closed = False

    async def handle_text(self, raw: str) -> None:
        """
        Process one inbound text frame to completion.

        Storage failures, and any other error raised while serving the frame,
        are contained to this frame: they are logged and reported to the
        sender with an error frame, and the connection stays open.

        Args:
            raw: Raw JSON text from the client
        """
        try:
            frame = parse_inbound_frame(raw)
        except ValidationError as e:
            self._drop("malformed", f"Discarding malformed frame: {e.error_count()} validation error(s)")
            return

        websocket_frames_received_total.labels(frame_type=frame.type, instance="api").inc()

        try:
            if isinstance(frame, AuthFrame):
                await self._handle_auth(frame)
            elif isinstance(frame, SubscribeFrame):
                await self._handle_subscribe(frame)
            elif isinstance(frame, ChatFrame):
                await self._handle_chat(frame)
            else:
                self._drop("unknown_type", f"No handler for frame type {frame.type}")
        except StorageError as e:
            activity_id = getattr(frame, "activity_id", None)
            logger.error(
                f"Storage failure handling {frame.type} frame for user "
                f"{self.connection.user_id} (activity {activity_id}): {e}"
            )
            await self._send_storage_error(activity_id)
        except Exception as e:
            activity_id = getattr(frame, "activity_id", None)
            logger.exception(
                f"Unexpected error handling {frame.type} frame for user "
                f"{self.connection.user_id} (activity {activity_id}): {e}"
            )
            await self._send_storage_error(activity_id)

    async def _handle_auth(self, frame: AuthFrame) -> None:
        if self.connection.is_authenticated:
            self._drop(
                "already_authenticated",
                f"Ignoring auth as user {frame.user_id}: connection already bound to user "
                f"{self.connection.user_id}"
            )
            return

        self.connection.user_id = frame.user_id
        self.registry.register_user_connection(frame.user_id, self.connection)
        await self._send(AuthAck())
        logger.info(f"Connection authenticated as user {frame.user_id}")

    async def _handle_subscribe(self, frame: SubscribeFrame) -> None:
        activity_id = frame.activity_id

        if not self.connection.is_authenticated:
            logger.warning(f"Subscribe to activity {activity_id} before auth")
            await self._send(SubscribeRejected(activity_id=activity_id, error=NOT_AUTHENTICATED))
            return

        user_id = self.connection.user_id
        is_allowed = await self._storage_call(self.storage.can_user_access_chat(user_id, activity_id))

        if not is_allowed:
            logger.info(f"User {user_id} denied subscription to activity {activity_id}")
            await self._send(SubscribeRejected(activity_id=activity_id, error=NOT_AUTHORIZED))
            return

        # Registered before the history fetch so no message falls between the two
        already_subscribed = activity_id in self.connection.subscribed_rooms
        self.registry.subscribe_to_room(activity_id, self.connection)
        self.connection.subscribed_rooms.add(activity_id)

        try:
            recent_messages = await self._storage_call(
                self.storage.get_recent_messages_by_activity_id(activity_id, self.recent_message_limit)
            )
        except Exception:
            if not already_subscribed:
                self.registry.unsubscribe_from_room(activity_id, self.connection)
                self.connection.subscribed_rooms.discard(activity_id)
            raise

        await self._send(SubscribeAccepted(
            activity_id=activity_id,
            messages=[ChatMessagePayload.from_stored(message) for message in recent_messages]
        ))
        logger.info(
            f"User {user_id} subscribed to activity {activity_id} "
            f"({len(recent_messages)} recent messages)"
        )

    async def _handle_chat(self, frame: ChatFrame) -> None:
        activity_id = frame.activity_id

        if not self.connection.is_authenticated:
            self._drop("unauthenticated", f"Dropping chat to activity {activity_id} before auth")
            return

        user_id = self.connection.user_id
        if frame.sender_id is not None and frame.sender_id != user_id:
            logger.warning(f"Chat claims sender {frame.sender_id} on connection of user {user_id}")

        if len(frame.content) > self.max_message_length:
            self._drop(
                "too_long",
                f"Dropping chat from user {user_id}: {len(frame.content)} chars "
                f"exceeds {self.max_message_length}"
            )
            return

        # Access is re-checked on every send; a subscription may have been revoked
        is_allowed = await self._storage_call(self.storage.can_user_access_chat(user_id, activity_id))
        if not is_allowed:
            self._drop("forbidden", f"Dropping chat from user {user_id} to activity {activity_id}: not authorized")
            return

        sender = await self._storage_call(self.storage.get_user(user_id))
        sender_name = sender.username if sender else None

        async with self.dispatcher.room_sequence(activity_id):
            # Not bounded by storage_timeout: an abandoned write may still commit
            message = await self._storage_call(
                self.storage.create_message(activity_id, user_id, frame.content),
                bounded=False
            )
            chat_messages_persisted_total.labels(instance="api").inc()
            logger.info(f"Message {message.id} persisted in activity {activity_id} by user {user_id}")

            await self.dispatcher.broadcast_to_room(
                activity_id,
                ChatBroadcast.from_stored(message, sender_name)
            )

    def close(self) -> None:
        """
        Release the connection from the registry.

        Idempotent: only the first call unregisters.
        """
        if self._closed:
            return
        self._closed = True
        self.registry.unregister_connection(self.connection)

    async def _storage_call(self, operation: Awaitable[T], bounded: bool = True) -> T:
        if not bounded:
            return await operation
        try:
            return await asyncio.wait_for(operation, timeout=self.storage_timeout)
        except asyncio.TimeoutError as e:
            raise StorageError(f"Storage call timed out after {self.storage_timeout}s") from e

    async def _send(self, frame: BaseModel) -> None:
        message = encode_frame(frame)
        await self.connection.send_json(message)
        websocket_frames_sent_total.labels(frame_type=message["type"], instance="api").inc()

    async def _send_storage_error(self, activity_id: Optional[int]) -> None:
        await self._send(ErrorFrame(
            error="Storage temporarily unavailable",
            code="STORAGE_UNAVAILABLE",
            activity_id=activity_id
        ))

    def _drop(self, reason: str, log_message: str) -> None:
        websocket_frames_dropped_total.labels(reason=reason, instance="api").inc()
        logger.warning(log_message)
