"""
Pytest configuration and fixtures for testing.
Provides test database, storage fakes, transport fakes and the test client.
"""
import os

# Must be set before huddle.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from starlette.websockets import WebSocketState

from huddle.api.connection_registry import Connection, ConnectionRegistry
from huddle.api.dependencies import get_db, get_storage
from huddle.api.dispatcher import Dispatcher
from huddle.db import models  # noqa: F401  registers models with Base
from huddle.db.database import Base
from huddle.db.repository import Repository
from huddle.main import app
from huddle.services.storage import (
    SqlStorageGateway, StorageGateway, StoredMessage, UserSummary
)


@pytest.fixture(scope="function")
def test_session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """
    Session factory bound to a fresh SQLite file per test.
    Automatically creates and destroys tables.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'huddle_test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db(test_session_factory) -> Generator[Session, None, None]:
    """Database session on the per-test database."""
    db = test_session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def seeded(test_db: Session) -> SimpleNamespace:
    """
    Seed one activity hosted by alice, with bob and carol as outsiders.

    bob has a pending join request; carol has none.
    """
    repository = Repository(test_db)
    alice = repository.create_user(username="alice", password_hash="x", email="alice@example.com")
    bob = repository.create_user(username="bob", password_hash="x", email="bob@example.com")
    carol = repository.create_user(username="carol", password_hash="x", email="carol@example.com")
    activity = repository.create_activity(host_id=alice.id, title="Sunrise hike")
    repository.create_participant_request(activity.id, bob.id)

    return SimpleNamespace(
        repository=repository,
        alice_id=alice.id,
        bob_id=bob.id,
        carol_id=carol.id,
        activity_id=activity.id
    )


@pytest.fixture(scope="function")
def sql_storage(test_session_factory) -> SqlStorageGateway:
    """SQL-backed storage gateway on the per-test database."""
    return SqlStorageGateway(test_session_factory)


@pytest.fixture(scope="function")
def test_client(test_session_factory, sql_storage) -> Generator[TestClient, None, None]:
    """
    Create a test client with storage and database dependency overrides.

    Used as a context manager so lifespan runs and every WebSocket session
    shares one event loop.
    """
    def override_get_db():
        db = test_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: sql_storage

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


class FakeWebSocket:
    """Transport double recording every JSON frame sent to it."""

    def __init__(self):
        self.sent: List[dict] = []
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail_sends = False

    async def send_json(self, data: dict) -> None:
        if self.fail_sends:
            raise RuntimeError("Cannot call 'send' once a close message has been sent.")
        self.sent.append(data)

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED


class FakeStorage(StorageGateway):
    """
    In-memory storage gateway with explicit access grants.

    ``fail_with`` makes every call raise; ``delay`` makes every call sleep
    first, to exercise timeouts.
    """

    def __init__(self):
        self.access = set()
        self.users = {}
        self.messages: List[StoredMessage] = []
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0

    def grant(self, user_id: int, activity_id: int) -> None:
        self.access.add((user_id, activity_id))

    def revoke(self, user_id: int, activity_id: int) -> None:
        self.access.discard((user_id, activity_id))

    async def _checkpoint(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with

    async def can_user_access_chat(self, user_id: int, activity_id: int) -> bool:
        await self._checkpoint()
        return (user_id, activity_id) in self.access

    async def create_message(self, activity_id: int, sender_id: int, content: str) -> StoredMessage:
        await self._checkpoint()
        message = StoredMessage(
            id=len(self.messages) + 1,
            activity_id=activity_id,
            sender_id=sender_id,
            content=content,
            created_at=datetime.now(timezone.utc)
        )
        self.messages.append(message)
        return message

    async def get_recent_messages_by_activity_id(self, activity_id: int, limit: int = 50) -> List[StoredMessage]:
        await self._checkpoint()
        room = [message for message in self.messages if message.activity_id == activity_id]
        return [
            message.model_copy(update={"sender_name": self.users.get(message.sender_id)})
            for message in room[-limit:]
        ]

    async def get_user(self, user_id: int) -> Optional[UserSummary]:
        await self._checkpoint()
        username = self.users.get(user_id)
        if username is None:
            return None
        return UserSummary(id=user_id, username=username)


@pytest.fixture
def fake_storage() -> FakeStorage:
    storage = FakeStorage()
    storage.users = {1: "alice", 2: "bob", 3: "carol"}
    return storage


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(registry: ConnectionRegistry) -> Dispatcher:
    return Dispatcher(registry)


@pytest.fixture
def make_connection():
    """Factory for connections over FakeWebSocket transports."""
    def factory() -> Connection:
        return Connection(websocket=FakeWebSocket())
    return factory
