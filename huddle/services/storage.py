"""
Storage gateway used by the realtime core.

The WebSocket session handler only ever talks to the abstract
``StorageGateway``; ``SqlStorageGateway`` backs it with the SQLAlchemy
repository, running each blocking call in a worker thread with its own
session so the event loop never blocks on the database.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, TypeVar
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from huddle.db.repository import Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """Raised when the storage backend fails or does not answer in time."""


class StoredMessage(BaseModel):
    """Persisted chat message, optionally enriched with the sender's username."""
    id: int
    activity_id: int
    sender_id: int
    content: str
    created_at: datetime
    sender_name: Optional[str] = None


class UserSummary(BaseModel):
    """The subset of a user record the realtime core needs."""
    id: int
    username: str


class StorageGateway(ABC):
    """Async persistence interface consumed by the session protocol handler."""

    @abstractmethod
    async def can_user_access_chat(self, user_id: int, activity_id: int) -> bool:
        """Return True if the user is the host or an approved participant."""

    @abstractmethod
    async def create_message(self, activity_id: int, sender_id: int, content: str) -> StoredMessage:
        """Persist a chat message and return the stored record."""

    @abstractmethod
    async def get_recent_messages_by_activity_id(self, activity_id: int, limit: int = 50) -> List[StoredMessage]:
        """Return up to ``limit`` latest messages of a room, oldest first."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserSummary]:
        """Return the user, or None if unknown."""


class SqlStorageGateway(StorageGateway):
    """
    StorageGateway backed by the SQLAlchemy Repository.
    
    Every call opens a fresh session from ``session_factory`` inside a worker
    thread and closes it before returning. SQLAlchemy errors are rolled back
    and re-raised as StorageError.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        """
        Initialize gateway.
        
        Args:
            session_factory: Callable returning a new SQLAlchemy Session
        """
        self.session_factory = session_factory

    def _call(self, operation: Callable[[Repository], T]) -> T:
        db = self.session_factory()
        try:
            return operation(Repository(db))
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Storage operation failed: {e}")
            raise StorageError(str(e)) from e
        finally:
            db.close()

    async def _run(self, operation: Callable[[Repository], T]) -> T:
        return await asyncio.to_thread(self._call, operation)

    async def can_user_access_chat(self, user_id: int, activity_id: int) -> bool:
        return await self._run(lambda repo: repo.can_user_access_chat(user_id, activity_id))

    async def create_message(self, activity_id: int, sender_id: int, content: str) -> StoredMessage:
        def operation(repo: Repository) -> StoredMessage:
            message = repo.create_message(activity_id, sender_id, content)
            return StoredMessage(
                id=message.id,
                activity_id=message.activity_id,
                sender_id=message.sender_id,
                content=message.content,
                created_at=message.created_at
            )

        return await self._run(operation)

    async def get_recent_messages_by_activity_id(self, activity_id: int, limit: int = 50) -> List[StoredMessage]:
        def operation(repo: Repository) -> List[StoredMessage]:
            return [
                StoredMessage(
                    id=message.id,
                    activity_id=message.activity_id,
                    sender_id=message.sender_id,
                    content=message.content,
                    created_at=message.created_at,
                    sender_name=username
                )
                for message, username in repo.get_recent_messages_by_activity_id(activity_id, limit)
            ]

        return await self._run(operation)

    async def get_user(self, user_id: int) -> Optional[UserSummary]:
        def operation(repo: Repository) -> Optional[UserSummary]:
            user = repo.get_user_by_id(user_id)
            if not user:
                return None
            return UserSummary(id=user.id, username=user.username)

        return await self._run(operation)
