"""API package: WebSocket session protocol, registry, dispatcher and routes."""
