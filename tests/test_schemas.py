"""
Tests for wire protocol parsing and encoding.
"""
import json
from datetime import datetime, timedelta
import pytest
from pydantic import ValidationError
from huddle.api.schemas import (
    AuthFrame, ChatBroadcast, ChatFrame, ErrorFrame, NotificationFrame, NotificationRequest, SubscribeFrame,
    SubscribeRejected, encode_frame, parse_inbound_frame
)
from huddle.services.storage import StoredMessage


class TestInboundFrames:
    """Tests for parse_inbound_frame."""

    def test_parse_auth(self):
        frame = parse_inbound_frame('{"type": "auth", "userId": 7}')

        assert isinstance(frame, AuthFrame)
        assert frame.user_id == 7

    def test_parse_subscribe(self):
        frame = parse_inbound_frame('{"type": "subscribe", "activityId": 42}')

        assert isinstance(frame, SubscribeFrame)
        assert frame.activity_id == 42

    def test_parse_chat_without_sender(self):
        frame = parse_inbound_frame('{"type": "chat", "activityId": 42, "content": "hi"}')

        assert isinstance(frame, ChatFrame)
        assert frame.sender_id is None
        assert frame.content == "hi"

    @pytest.mark.parametrize("raw", [
        "",
        "{not json",
        '{"type": "unknown"}',
        '{"userId": 1}',
        '{"type": "subscribe"}',
        '{"type": "chat", "activityId": 42, "content": null}',
    ])
    def test_invalid_frames_raise(self, raw):
        with pytest.raises(ValidationError):
            parse_inbound_frame(raw)


class TestOutboundFrames:
    """Tests for encode_frame."""

    def test_subscribe_rejected_shape(self):
        frame = SubscribeRejected(activity_id=42, error="Not authorized to join this chat")

        assert encode_frame(frame) == {
            "type": "subscribe",
            "success": False,
            "activityId": 42,
            "error": "Not authorized to join this chat"
        }

    def test_chat_broadcast_uses_camel_case(self):
        stored = StoredMessage(
            id=5, activity_id=42, sender_id=1, content="hello", created_at=datetime(2024, 1, 1, 12, 0)
        )

        encoded = encode_frame(ChatBroadcast.from_stored(stored, "alice"))

        assert encoded == {
            "type": "chat",
            "id": 5,
            "activityId": 42,
            "senderId": 1,
            "senderName": "alice",
            "content": "hello",
            "timestamp": "2024-01-01T12:00:00"
        }
        json.dumps(encoded)

    def test_optional_fields_are_omitted(self):
        assert encode_frame(ErrorFrame(error="boom")) == {"type": "error", "error": "boom"}


class TestNotificationRequest:
    """Tests for the notification API body."""

    def test_accepts_camel_case(self):
        request = NotificationRequest.model_validate({"recipientId": 3, "message": "hi", "data": {"type": "new_review"}})

        assert request.recipient_id == 3
        assert request.data == {"type": "new_review"}

    def test_missing_type_defaults_to_general(self):
        assert NotificationRequest(recipient_id=1, message="hi").data == {"type": "general"}
        assert NotificationRequest(recipient_id=1, message="hi", data={"x": 1}).data == {"x": 1, "type": "general"}

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError):
            NotificationRequest(recipient_id=1, message="")


def test_notification_timestamp_is_utc():
    """Notification frames are stamped with an explicit UTC timestamp."""
    frame = NotificationFrame(recipient_id=1, message="hi")

    assert frame.timestamp.utcoffset() == timedelta(0)
    assert encode_frame(frame)["timestamp"].endswith("Z")
