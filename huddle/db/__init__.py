"""Database package initialization."""
from huddle.db.database import engine, SessionLocal, Base, init_db

__all__ = ["engine", "SessionLocal", "Base", "init_db"]
