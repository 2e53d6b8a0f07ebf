"""Service wiring for the portal application.

The services are built once per process and shared by every request.
Tests swap them out through ``app.dependency_overrides[get_portal]``.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

from assessment_portal.config import Settings, get_settings
from assessment_portal.models.database import get_session_factory
from assessment_portal.services.admin import AdminService
from assessment_portal.services.api_client import ApiClient
from assessment_portal.services.assessment_fetcher import AssessmentFetcher
from assessment_portal.services.assessment_runner import RunnerRegistry
from assessment_portal.services.auth import AuthService
from assessment_portal.services.session_store import SessionStore


@dataclass
class Portal:
    """Container for the services behind the HTTP surface."""
    settings: Settings
    store: SessionStore
    api: ApiClient
    auth: AuthService
    fetcher: AssessmentFetcher
    admin: AdminService
    registry: RunnerRegistry = field(default_factory=RunnerRegistry)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[SessionStore] = None,
        api: Optional[ApiClient] = None,
    ) -> "Portal":
        """Build the service graph.

        Args:
            settings: Settings to use (defaults to get_settings())
            store: Session store (defaults to one backed by the configured database)
            api: API client (defaults to one bound to the store)
        """
        settings = settings or get_settings()
        store = store or SessionStore(get_session_factory())
        api = api or ApiClient(store, settings=settings)
        return cls(
            settings=settings,
            store=store,
            api=api,
            auth=AuthService(api, store),
            fetcher=AssessmentFetcher(api),
            admin=AdminService(api),
            registry=RunnerRegistry(settings.session_idle_timeout_seconds),
        )


@lru_cache()
def get_portal() -> Portal:
    """Get the process-wide Portal (cached)."""
    return Portal.create()
