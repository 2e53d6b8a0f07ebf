"""Database models and session management.

This package contains the SQLAlchemy models backing the local session store.
"""

from assessment_portal.models.database import (
    Base,
    build_engine,
    get_engine,
    get_session_factory,
    get_db,
)
from assessment_portal.models.stored_session import StoredSession

__all__ = [
    "Base",
    "build_engine",
    "get_engine",
    "get_session_factory",
    "get_db",
    "StoredSession",
]
