"""
Dependency injection functions for FastAPI.
Provides database sessions and the realtime collaborators created at startup.
"""
from typing import Generator
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection
from huddle.api.connection_registry import ConnectionRegistry
from huddle.api.dispatcher import Dispatcher
from huddle.db.database import SessionLocal
from huddle.services.storage import StorageGateway


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Automatically closes the session when request completes.
    
    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_registry(conn: HTTPConnection) -> ConnectionRegistry:
    """Connection registry owned by the running application."""
    return conn.app.state.registry


def get_dispatcher(conn: HTTPConnection) -> Dispatcher:
    """Dispatcher owned by the running application."""
    return conn.app.state.dispatcher


def get_storage(conn: HTTPConnection) -> StorageGateway:
    """Storage gateway owned by the running application."""
    return conn.app.state.storage
