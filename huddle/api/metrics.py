"""
Prometheus metrics for the realtime service.

Tracks WebSocket connections, frame traffic, chat persistence and
notification delivery. All collectors live on a dedicated registry that
``main.py`` exposes at ``/metrics``.
"""
from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry
registry = CollectorRegistry()

# WebSocket connection metrics
websocket_connections_active = Gauge(
    "websocket_connections_active",
    "Number of active WebSocket connections",
    labelnames=["instance"],
    registry=registry
)

websocket_connections_total = Counter(
    "websocket_connections_total",
    "Total number of WebSocket connections established",
    labelnames=["instance"],
    registry=registry
)

websocket_disconnections_total = Counter(
    "websocket_disconnections_total",
    "Total number of WebSocket disconnections",
    labelnames=["instance", "reason"],
    registry=registry
)

websocket_users_connected = Gauge(
    "websocket_users_connected",
    "Number of unique authenticated users currently connected",
    labelnames=["instance"],
    registry=registry
)

websocket_subscriptions_active = Gauge(
    "websocket_subscriptions_active",
    "Total number of active room subscriptions",
    labelnames=["instance"],
    registry=registry
)

# Frame traffic metrics
websocket_frames_received_total = Counter(
    "websocket_frames_received_total",
    "Total number of well-formed frames received via WebSocket",
    labelnames=["frame_type", "instance"],
    registry=registry
)

websocket_frames_sent_total = Counter(
    "websocket_frames_sent_total",
    "Total number of frames sent via WebSocket",
    labelnames=["frame_type", "instance"],
    registry=registry
)

websocket_frames_dropped_total = Counter(
    "websocket_frames_dropped_total",
    "Total number of inbound frames discarded without effect",
    labelnames=["reason", "instance"],
    registry=registry
)

websocket_send_failures_total = Counter(
    "websocket_send_failures_total",
    "Total number of failed sends during fan-out",
    labelnames=["frame_type", "instance"],
    registry=registry
)

# Business metrics
chat_messages_persisted_total = Counter(
    "chat_messages_persisted_total",
    "Total number of chat messages persisted",
    labelnames=["instance"],
    registry=registry
)

notifications_total = Counter(
    "notifications_total",
    "Total number of notifications handed to the dispatcher",
    labelnames=["outcome", "instance"],
    registry=registry
)


def update_websocket_metrics(connection_registry):
    """
    Update WebSocket gauges from connection registry state.

    Called whenever a connection opens or closes.

    Args:
        connection_registry: ConnectionRegistry instance
    """
    websocket_connections_active.labels(instance="api").set(
        connection_registry.get_connection_count()
    )
    websocket_users_connected.labels(instance="api").set(
        connection_registry.get_user_count()
    )
    websocket_subscriptions_active.labels(instance="api").set(
        connection_registry.get_subscription_count()
    )
