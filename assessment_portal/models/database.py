"""Database setup and session management using SQLAlchemy 2.0.

The portal only persists the signed-in user's identity and tokens, so the
database is small and usually SQLite. The engine is created lazily so
importing models does not open a connection.
"""

from functools import lru_cache
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from assessment_portal.config import get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models.

    Uses SQLAlchemy 2.0's DeclarativeBase for modern type-safe models.
    All models should inherit from this class.
    """
    pass


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the given URL.

    Args:
        database_url: SQLAlchemy connection string
        echo: Log emitted SQL

    Returns:
        Engine with pre-ping enabled
    """
    engine_kwargs = {
        "pool_pre_ping": True,
        "echo": echo,
    }

    # SQLite connections are used from worker threads (asyncio.to_thread)
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}

    return create_engine(database_url, **engine_kwargs)


@lru_cache
def get_engine() -> Engine:
    """Get the process-wide engine, creating tables on first use."""
    settings = get_settings()
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(engine)
    return engine


@lru_cache
def get_session_factory() -> sessionmaker:
    """Get the process-wide session factory bound to ``get_engine()``."""
    return sessionmaker(
        bind=get_engine(),
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Prevent lazy loading after commit
    )


def get_db() -> Generator[Session, None, None]:
    """Dependency function for FastAPI to provide database sessions.

    Yields:
        Session: SQLAlchemy database session

    Note:
        The session is automatically closed after the request completes,
        even if an exception occurs.
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
