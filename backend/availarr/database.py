"""
Database Configuration for Availarr

This module provides the engine, session factory and startup connection
check shared by the jobs and the HTTP app.
"""

import logging
import os
import time
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from availarr.config import Config
from availarr.models import Base
from availarr.services.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

DATABASE_URL = Config.DATABASE_URL


def make_engine(database_url: str) -> Engine:
    """Create an engine, with the SQLite thread check relaxed for worker threads."""
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith('sqlite') else {}
    )


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _ensure_sqlite_dir(database_url: str) -> None:
    if not database_url.startswith('sqlite:///') or database_url.endswith(':memory:'):
        return
    db_dir = os.path.dirname(database_url.replace('sqlite:///', ''))
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)


def init_db(
    bind: Optional[Engine] = None,
    max_attempts: Optional[int] = None,
    retry_delay: Optional[float] = None
) -> None:
    """
    Connect to the database and create missing tables.

    The connection is retried ``max_attempts`` times with a fixed delay,
    which covers a database container that is still starting.

    Raises:
        StoreUnavailableError: If every attempt fails
    """
    bind = bind or engine
    max_attempts = max_attempts or Config.DB_CONNECT_MAX_ATTEMPTS
    retry_delay = Config.DB_CONNECT_RETRY_DELAY if retry_delay is None else retry_delay

    _ensure_sqlite_dir(str(bind.url))

    for attempt in range(1, max_attempts + 1):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            Base.metadata.create_all(bind=bind)
            logger.info("✓ Database connected, tables created/verified")
            return
        except OperationalError as e:
            if attempt >= max_attempts:
                raise StoreUnavailableError(
                    f"Database unreachable after {max_attempts} attempts: {e}"
                ) from e
            logger.warning(
                f"⚠ Database connection attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {retry_delay}s..."
            )
            time.sleep(retry_delay)


def get_db():
    """
    FastAPI dependency for database sessions.

    Yields:
        SQLAlchemy session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
