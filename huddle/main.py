"""
Main FastAPI application entry point.
Initializes the application with middleware, routes, the realtime
collaborators (registry, dispatcher, storage gateway) and health endpoints.
"""
import logging
from uuid import uuid4
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from huddle import __version__
from huddle.core.config import settings
from huddle.core.logging_config import configure_logging, request_id_ctx
from huddle.db.database import init_db, SessionLocal
from huddle.api.connection_registry import ConnectionRegistry
from huddle.api.dispatcher import Dispatcher
from huddle.api.metrics import registry as metrics_registry
from huddle.services.storage import SqlStorageGateway

configure_logging(service_name="huddle-realtime", level=settings.log_level, enable_json=settings.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Builds one registry, dispatcher and storage gateway per application
    instance and tears them down on shutdown.
    """
    # Startup
    logger.info("Starting Huddle realtime service...")
    try:
        init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")

    registry = ConnectionRegistry()
    app.state.registry = registry
    app.state.dispatcher = Dispatcher(registry)
    app.state.storage = SqlStorageGateway(SessionLocal)
    logger.info("Realtime core ready")

    yield

    # Shutdown
    logger.info(
        f"Shutting down Huddle realtime service "
        f"({registry.get_connection_count()} connections still open)"
    )


# Create FastAPI application
app = FastAPI(
    title="Huddle Realtime",
    description="Real-time activity chat rooms and user notifications",
    version=__version__,
    lifespan=lifespan
)

# Prometheus HTTP metrics plus the realtime collectors, exposed at /metrics
Instrumentator(registry=metrics_registry).instrument(app).expose(app, endpoint="/metrics", tags=["Metrics"])


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each HTTP request with a request ID for log correlation.

    A caller-supplied ``X-Request-ID`` (e.g. from the REST tier forwarding a
    notification) is kept; otherwise a new one is generated. The ID is echoed
    back in the response header.
    """
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        ctx_token = request_id_ctx.set(request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
            return response
        finally:
            request_id_ctx.reset(ctx_token)


app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Health"])
async def root():
    """
    Root endpoint with service pointers.
    """
    return {
        "message": "Huddle Realtime",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
        "websocket": settings.websocket_path
    }


# Register endpoint routers
from huddle.api.endpoints import notifications_router  # noqa: E402
from huddle.api.health import router as health_router  # noqa: E402
from huddle.api.websocket import websocket_router  # noqa: E402

app.include_router(health_router)
app.include_router(notifications_router, prefix="/v1/notifications", tags=["Notifications"])
app.include_router(websocket_router, tags=["WebSocket"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "huddle.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower()
    )
