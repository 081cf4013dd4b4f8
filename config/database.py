"""
Tract Affordability Atlas - Database Connection Management
SQLAlchemy configuration for the SQL dataset backend
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from config.settings import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _engine_connect_args(database_url: str) -> dict:
    # SQLite connections are shared across FastAPI worker threads
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    if database_url.startswith("postgresql"):
        return {"options": "-c timezone=utc"}
    return {}


@lru_cache()
def get_engine() -> Engine:
    """
    Build the SQLAlchemy engine on first use.

    Nothing connects until the SQL backend is actually selected, so the
    default file backend never touches DATABASE_URL.
    """
    database_url = settings.DATABASE_URL
    # Managed Postgres in production: NullPool avoids holding idle connections
    use_null_pool = settings.ENVIRONMENT == "production" and not database_url.startswith("sqlite")
    return create_engine(
        database_url,
        poolclass=NullPool if use_null_pool else None,
        echo=settings.DEBUG,
        connect_args=_engine_connect_args(database_url),
    )


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_db() as db:
            db.execute(...)
    """
    db = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        db.close()


def test_connection() -> bool:
    """
    Test database connectivity.

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        with get_db() as db:
            result = db.execute(text("SELECT 1"))
            assert result.scalar() == 1
            return True

    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
