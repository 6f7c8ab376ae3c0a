"""
Database connection and session management.
Provides SQLAlchemy engine, session factory, and base class.
"""
import logging
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from huddle.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.
    
    Server databases get the production connection pool settings; SQLite
    (local development and tests) gets a thread-shareable connection since
    storage calls run in worker threads.
    
    Args:
        database_url: SQLAlchemy database URL
        
    Returns:
        Configured Engine
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=settings.log_level == "DEBUG"
        )
    
    return create_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=settings.db_pool_recycle,
        echo=settings.log_level == "DEBUG"
    )


# Create SQLAlchemy engine with connection pooling
engine = build_engine(settings.database_url)

# Create SessionLocal class for database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create Base class for models
Base = declarative_base()


def init_db(bind: Engine = None) -> None:
    """
    Initialize database by creating all tables.
    Should be called once during application setup.
    
    Args:
        bind: Engine to create tables on (defaults to the application engine)
    """
    from huddle.db import models  # noqa: F401  registers models with Base
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")
