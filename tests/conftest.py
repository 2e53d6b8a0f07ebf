"""Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import os
from typing import Generator
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for tests BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("API_BASE_URL", "http://api.test/api/")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("AUTOSAVE_DEBOUNCE_MS", "20")

from assessment_portal.config import Settings
from assessment_portal.models.database import Base
from assessment_portal.schemas.assessment import Assessment
from assessment_portal.schemas.auth import AuthenticatedUser
from assessment_portal.services.session_store import SessionStore


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine with SQLite in-memory database.

    Yields:
        Engine: SQLAlchemy engine for testing

    Note:
        A StaticPool keeps the single in-memory database alive across
        the worker threads that asyncio.to_thread uses.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    """Session factory bound to the test engine."""
    return sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session.

    Yields:
        Session: SQLAlchemy session for testing
    """
    session = session_factory()

    yield session

    session.rollback()
    session.close()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short autosave debounce."""
    return Settings(
        api_base_url="http://api.test/api/",
        database_url="sqlite:///:memory:",
        autosave_debounce_ms=20,
    )


@pytest.fixture
def store(session_factory) -> SessionStore:
    """Empty session store backed by the test database."""
    return SessionStore(session_factory)


@pytest.fixture
def signed_in_user() -> AuthenticatedUser:
    return AuthenticatedUser(
        email="dana@acme.io",
        token="access-1",
        refresh_token="refresh-1",
        is_admin=False,
        id=7,
    )


@pytest.fixture
def mock_api() -> MagicMock:
    """Stand-in ApiClient whose endpoint methods tests configure."""
    api = MagicMock()
    api.get_partial_responses.return_value = []
    return api


@pytest.fixture
def assessment_data() -> dict:
    """Raw assessment payload as returned by ``GET assessments/{id}/``.

    Four questions, one of each type; q1 and q3 are required.
    """
    return {
        "id": 12,
        "title": "Team Health Check",
        "description": "Quarterly pulse survey",
        "time_limit_minutes": None,
        "is_active": True,
        "questions": [
            {
                "id": 101,
                "question_text": "What does your team do?",
                "question_type": "text",
                "required": True,
                "choices": [],
            },
            {
                "id": 102,
                "question_text": "Which tools do you use?",
                "question_type": "checkbox",
                "required": False,
                "choices": [
                    {"id": 1, "choice_text": "Git", "value": "git"},
                    {"id": 2, "choice_text": "Jira", "value": "jira"},
                    {"id": 3, "choice_text": "Slack", "value": "slack"},
                ],
            },
            {
                "id": 103,
                "question_text": "How large is your team?",
                "question_type": "multiple_choice",
                "required": True,
                "choices": [
                    {"id": 4, "choice_text": "Small", "value": "small"},
                    {"id": 5, "choice_text": "Large", "value": "large"},
                ],
            },
            {
                "id": 104,
                "question_text": "We ship often",
                "question_type": "scale",
                "required": False,
                "choices": [],
            },
        ],
    }


@pytest.fixture
def assessment(assessment_data) -> Assessment:
    return Assessment.model_validate(assessment_data)
