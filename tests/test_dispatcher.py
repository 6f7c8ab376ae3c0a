"""
Unit tests for the broadcast/notification dispatcher.
Tests room fan-out, user notifications and per-room sequencing.
"""
import asyncio
from huddle.api.schemas import NotificationRequest


class TestBroadcastToRoom:
    """Tests for room fan-out."""

    def test_broadcast_reaches_every_subscriber(self, registry, dispatcher, make_connection):
        """Each subscriber receives exactly one copy."""
        first, second = make_connection(), make_connection()
        registry.subscribe_to_room(42, first)
        registry.subscribe_to_room(42, second)

        delivered = asyncio.run(dispatcher.broadcast_to_room(42, {"type": "chat", "content": "hi"}))

        assert delivered == 2
        assert first.websocket.sent == [{"type": "chat", "content": "hi"}]
        assert second.websocket.sent == [{"type": "chat", "content": "hi"}]

    def test_broadcast_skips_closed_connections(self, registry, dispatcher, make_connection):
        """Closed transports are skipped, not errors, and stay registered."""
        open_connection, closed_connection = make_connection(), make_connection()
        registry.subscribe_to_room(42, open_connection)
        registry.subscribe_to_room(42, closed_connection)
        closed_connection.websocket.disconnect()

        delivered = asyncio.run(dispatcher.broadcast_to_room(42, {"type": "chat"}))

        assert delivered == 1
        assert closed_connection.websocket.sent == []
        assert closed_connection in registry.get_connections_for_room(42)

    def test_send_failure_does_not_block_other_recipients(self, registry, dispatcher, make_connection):
        """A failing transport only loses its own copy."""
        broken, healthy = make_connection(), make_connection()
        broken.websocket.fail_sends = True
        registry.subscribe_to_room(42, broken)
        registry.subscribe_to_room(42, healthy)

        delivered = asyncio.run(dispatcher.broadcast_to_room(42, {"type": "chat"}))

        assert delivered == 1
        assert healthy.websocket.sent == [{"type": "chat"}]

    def test_broadcast_to_empty_room_is_noop(self, dispatcher):
        """No subscribers means nothing delivered and no error."""
        assert asyncio.run(dispatcher.broadcast_to_room(404, {"type": "chat"})) == 0


class TestNotifyUser:
    """Tests for user-scoped delivery."""

    def test_notify_user_without_connections_completes_silently(self, dispatcher):
        """An offline recipient is a no-op: no queue, no exception."""
        request = NotificationRequest(
            recipient_id=1,
            message="X requested to join",
            data={"type": "join_request"}
        )

        delivered = asyncio.run(dispatcher.send_notification(request))

        assert delivered == 0

    def test_notify_user_reaches_every_device(self, registry, dispatcher, make_connection):
        """Notifications go to all of the user's open connections only."""
        phone, laptop, stranger = make_connection(), make_connection(), make_connection()
        registry.register_user_connection(1, phone)
        registry.register_user_connection(1, laptop)
        registry.register_user_connection(2, stranger)

        delivered = asyncio.run(dispatcher.notify_user(1, {"type": "notification", "message": "hi"}))

        assert delivered == 2
        assert phone.websocket.sent == laptop.websocket.sent == [{"type": "notification", "message": "hi"}]
        assert stranger.websocket.sent == []

    def test_send_notification_builds_notification_frame(self, registry, dispatcher, make_connection):
        """Frames carry a fresh id, the recipient, message, data and timestamp."""
        connection = make_connection()
        registry.register_user_connection(1, connection)
        request = NotificationRequest(
            recipient_id=1,
            message="Your request to join \"Hike\" has been approved",
            data={"type": "request_update", "activityId": 42, "status": "approved"}
        )

        async def send_twice():
            await dispatcher.send_notification(request)
            await dispatcher.send_notification(request)

        asyncio.run(send_twice())

        first, second = connection.websocket.sent
        assert first["type"] == "notification"
        assert first["recipientId"] == 1
        assert first["message"] == "Your request to join \"Hike\" has been approved"
        assert first["data"] == {"type": "request_update", "activityId": 42, "status": "approved"}
        assert "timestamp" in first
        assert first["id"] != second["id"]


class TestRoomSequence:
    """Tests for per-room serialization of persist-and-broadcast sections."""

    def test_sections_for_same_room_do_not_interleave(self, dispatcher):
        """The second section starts only after the first completes."""
        order = []

        async def section(name: str, delay: float):
            async with dispatcher.room_sequence(42):
                order.append(f"{name}-start")
                await asyncio.sleep(delay)
                order.append(f"{name}-end")

        async def scenario():
            await asyncio.gather(section("first", 0.02), section("second", 0))

        asyncio.run(scenario())

        assert order == ["first-start", "first-end", "second-start", "second-end"]

    def test_sections_for_different_rooms_run_concurrently(self, dispatcher):
        """Rooms do not block each other."""
        order = []

        async def section(room_id: int, delay: float):
            async with dispatcher.room_sequence(room_id):
                order.append(f"{room_id}-start")
                await asyncio.sleep(delay)
                order.append(f"{room_id}-end")

        async def scenario():
            await asyncio.gather(section(1, 0.02), section(2, 0))

        asyncio.run(scenario())

        assert order.index("2-end") < order.index("1-end")

    def test_room_locks_released_when_unused(self, dispatcher):
        """No lock bookkeeping outlives its users."""
        async def scenario():
            async with dispatcher.room_sequence(42):
                pass

        asyncio.run(scenario())

        assert dispatcher._room_locks == {}
        assert dispatcher._room_lock_users == {}
