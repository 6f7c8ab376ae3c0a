"""
WebSocket endpoint for real-time chat and notifications.

Each accepted transport gets a Connection session and a SessionHandler.
Frames are processed strictly one after another; on disconnect, whatever
the cause, the connection is unregistered exactly once.
"""
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from huddle.api.connection_registry import Connection, ConnectionRegistry
from huddle.api.dependencies import get_dispatcher, get_registry, get_storage
from huddle.api.dispatcher import Dispatcher
from huddle.api.metrics import (
    websocket_connections_total, websocket_disconnections_total,
    websocket_frames_dropped_total, update_websocket_metrics
)
from huddle.api.session_handler import SessionHandler
from huddle.core.config import settings
from huddle.core.logging_config import connection_id_ctx
from huddle.services.storage import StorageGateway

logger = logging.getLogger(__name__)

websocket_router = APIRouter()


@websocket_router.websocket(settings.websocket_path)
async def websocket_endpoint(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_registry),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    storage: StorageGateway = Depends(get_storage)
):
    """
    WebSocket endpoint for activity chat rooms and user notifications.
    
    Connection Flow:
        1. Client connects: ws://host/ws
        2. Client authenticates: {"type": "auth", "userId": 1}
        3. Client joins rooms: {"type": "subscribe", "activityId": 42}
        4. Client posts: {"type": "chat", "activityId": 42, "senderId": 1, "content": "hi"}
        5. Server pushes chat frames for subscribed rooms and notification
           frames for the authenticated user
    
    WebSocket Message Types (Server -> Client):
        - auth: {"type": "auth", "success": true}
        - subscribe: success with recent "messages", or failure with "error"
        - chat: a message persisted in a subscribed room
        - notification: join request, request update, new review
        - error: storage failure while processing the last frame
    
    Malformed frames are discarded without a reply; unauthorized chat
    sends are dropped without a reply.
    """
    await websocket.accept()
    
    connection = Connection(websocket=websocket)
    ctx_token = connection_id_ctx.set(connection.connection_id)
    handler = SessionHandler(connection, registry, dispatcher, storage)
    
    websocket_connections_total.labels(instance="api").inc()
    logger.info("WebSocket connection accepted")
    
    reason = "normal"
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            
            text = message.get("text")
            if text is None:
                websocket_frames_dropped_total.labels(reason="binary", instance="api").inc()
                logger.warning("Discarding binary frame")
                continue
            
            await handler.handle_text(text)
            update_websocket_metrics(registry)
    
    except WebSocketDisconnect as e:
        logger.info(f"User {connection.user_id} disconnected from WebSocket (code {e.code})")
    except Exception as e:
        reason = "error"
        logger.exception(f"WebSocket error for user {connection.user_id}: {e}")
    finally:
        handler.close()
        websocket_disconnections_total.labels(instance="api", reason=reason).inc()
        update_websocket_metrics(registry)
        connection_id_ctx.reset(ctx_token)
