"""
Pydantic schemas for the realtime wire protocol and the notification API.

WebSocket frames are JSON objects tagged by a ``type`` field and use
camelCase keys. Inbound frames form a closed discriminated union, so an
unknown ``type`` fails validation the same way malformed JSON does.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel
from huddle.services.storage import StoredMessage


class CamelModel(BaseModel):
    """Base model serialising snake_case fields as camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Inbound frames (client -> server)
class AuthFrame(CamelModel):
    """
    Bind a user identity to the connection.

    Example:
        ```json
        {"type": "auth", "userId": 1}
        ```
    """
    type: Literal["auth"]
    user_id: int = Field(..., description="Claimed user ID")


class SubscribeFrame(CamelModel):
    """
    Join an activity's chat room.

    Example:
        ```json
        {"type": "subscribe", "activityId": 42}
        ```
    """
    type: Literal["subscribe"]
    activity_id: int = Field(..., description="Activity (room) ID")


class ChatFrame(CamelModel):
    """
    Post a message to an activity's chat room.

    ``senderId`` is accepted for client compatibility but never trusted; the
    connection's authenticated user is always the sender.

    Example:
        ```json
        {"type": "chat", "activityId": 42, "senderId": 1, "content": "hello"}
        ```
    """
    type: Literal["chat"]
    activity_id: int = Field(..., description="Activity (room) ID")
    sender_id: Optional[int] = Field(None, description="Client-claimed sender (ignored)")
    content: str = Field(..., description="Message text")


InboundFrame = Annotated[Union[AuthFrame, SubscribeFrame, ChatFrame], Field(discriminator="type")]

inbound_frame_adapter: TypeAdapter = TypeAdapter(InboundFrame)


def parse_inbound_frame(raw: str) -> Union[AuthFrame, SubscribeFrame, ChatFrame]:
    """
    Parse a raw text frame into its typed inbound variant.

    Args:
        raw: JSON text received from the client

    Returns:
        AuthFrame, SubscribeFrame or ChatFrame

    Raises:
        pydantic.ValidationError: on invalid JSON, unknown type or missing fields
    """
    return inbound_frame_adapter.validate_json(raw)


# Outbound frames (server -> client)
class ChatMessagePayload(CamelModel):
    """A chat message as clients render it; also the shape of history entries."""
    id: int
    activity_id: int
    sender_id: int
    sender_name: Optional[str] = None
    content: str
    timestamp: datetime

    @classmethod
    def from_stored(cls, message: StoredMessage, sender_name: Optional[str] = None) -> "ChatMessagePayload":
        return cls(
            id=message.id,
            activity_id=message.activity_id,
            sender_id=message.sender_id,
            sender_name=sender_name if sender_name is not None else message.sender_name,
            content=message.content,
            timestamp=message.created_at
        )


class AuthAck(CamelModel):
    """Acknowledges an auth frame."""
    type: Literal["auth"] = "auth"
    success: bool = True


class SubscribeAccepted(CamelModel):
    """Subscription granted, with the room's recent history."""
    type: Literal["subscribe"] = "subscribe"
    success: Literal[True] = True
    activity_id: int
    messages: List[ChatMessagePayload] = Field(default_factory=list)


class SubscribeRejected(CamelModel):
    """Subscription denied."""
    type: Literal["subscribe"] = "subscribe"
    success: Literal[False] = False
    activity_id: int
    error: str


class ChatBroadcast(ChatMessagePayload):
    """A newly persisted chat message fanned out to the room."""
    type: Literal["chat"] = "chat"


class NotificationFrame(CamelModel):
    """Ephemeral per-user notification (join request, request update, review)."""
    type: Literal["notification"] = "notification"
    id: str = Field(default_factory=lambda: str(uuid4()))
    recipient_id: int
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorFrame(CamelModel):
    """Reports a server-side failure while processing a frame."""
    type: Literal["error"] = "error"
    error: str
    code: Optional[str] = None
    activity_id: Optional[int] = None


OutboundFrame = Union[AuthAck, SubscribeAccepted, SubscribeRejected, ChatBroadcast, NotificationFrame, ErrorFrame]


def encode_frame(frame: BaseModel) -> Dict[str, Any]:
    """Serialise an outbound frame to a JSON-compatible dict with camelCase keys."""
    return frame.model_dump(mode="json", by_alias=True, exclude_none=True)


# Notification API Schemas
class NotificationRequest(CamelModel):
    """
    Notification handed to the dispatcher by the REST tier.

    Example:
        ```json
        {
            "recipientId": 1,
            "message": "alice has requested to join your activity \\"Hike\\"",
            "data": {"type": "join_request", "activityId": 42, "requestId": 7}
        }
        ```
    """
    recipient_id: int = Field(..., description="User to notify")
    message: str = Field(..., min_length=1, description="Human-readable text")
    data: Dict[str, Any] = Field(
        default_factory=dict,
        validate_default=True,
        description="Structured payload with a type discriminator"
    )

    @field_validator("data")
    @classmethod
    def ensure_type_discriminator(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        if not value.get("type"):
            return {**value, "type": "general"}
        return value


class NotificationDispatchResponse(CamelModel):
    """Result of a notification dispatch."""
    recipient_id: int
    delivered: int = Field(..., description="Number of live connections the notification reached")
