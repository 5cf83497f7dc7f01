# bakery_orders/config/database.py
import logging
import sqlite3
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from .settings import get_settings
from ..models.base import Base

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with pool options suited to the backend."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        echo=echo,
    )


# Database engine configuration
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# Database session dependency
def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Creates a new database session for each request.
    """
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# SQLite-specific configuration
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def check_database_health(db: Session = None) -> bool:
    """Check if database connection is healthy."""
    try:
        if db is not None:
            db.execute(text("SELECT 1"))
        else:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def init_database(bind: Engine = None):
    """Initialize database with tables."""
    # models must be imported so their tables register on Base.metadata
    from .. import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


def cleanup_database():
    """Clean up database connections."""
    try:
        engine.dispose()
        logger.info("Database connections cleaned up")
    except Exception as e:
        logger.error(f"Database cleanup failed: {e}")


__all__ = [
    "engine",
    "build_engine",
    "SessionLocal",
    "get_db",
    "init_database",
    "cleanup_database",
    "check_database_health",
]
