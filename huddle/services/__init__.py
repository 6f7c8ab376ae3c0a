"""Services package initialization."""
from huddle.services.storage import StorageGateway, SqlStorageGateway, StorageError

__all__ = ["StorageGateway", "SqlStorageGateway", "StorageError"]
