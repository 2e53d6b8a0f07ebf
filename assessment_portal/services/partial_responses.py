"""Partial responses: writing autosaved snapshots and finding them again.

A partial response is the backend's savepoint for an in-progress session,
keyed by (assessment, respondent email). ``PartialResponseWriter`` persists
snapshots for the autosave coordinator; ``PartialResponseResolver`` looks a
snapshot up when a respondent identifies themselves and either announces
it or hydrates the session, depending on the resume policy.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional

from assessment_portal.schemas.responses import PartialResponse, SubmissionPayload
from assessment_portal.services.api_client import ApiClient, ApiError
from assessment_portal.services.form_engine import EventKind, FormSession, SessionEvent
from assessment_portal.services.respondent import RespondentEmail
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


class ResumePolicy(str, Enum):
    """What to do with a snapshot found for the respondent."""
    NOTIFY = "notify"
    HYDRATE = "hydrate"


class PartialResponseWriter:
    """Persists snapshots, creating one record and updating it afterwards.

    The first save POSTs a new snapshot; once the backend has returned an
    id (or the resolver found an existing one) later saves PUT to it.
    Changing the respondent email forgets the id, since snapshots are
    keyed by email.
    """

    def __init__(self, api: ApiClient):
        self.api = api
        self.partial_id: Optional[int] = None
        self._email: Optional[str] = None

    def adopt(self, partial: PartialResponse) -> None:
        """Continue writing to an existing snapshot."""
        self.partial_id = partial.id
        self._email = partial.respondent_email

    def save(self, payload: SubmissionPayload) -> Optional[PartialResponse]:
        """Write a snapshot (blocking; run it off the event loop).

        Raises:
            ApiError: If the backend rejects the snapshot
        """
        if self._email != payload.respondent_email:
            self.partial_id = None
            self._email = payload.respondent_email

        if self.partial_id is not None:
            saved = self.api.update_partial_response(self.partial_id, payload)
        else:
            saved = self.api.save_partial_response(payload)

        if saved is not None and saved.id is not None:
            self.partial_id = saved.id
        return saved

    async def save_async(self, payload: SubmissionPayload) -> Optional[PartialResponse]:
        """Coroutine wrapper around ``save`` for the autosave coordinator."""
        return await asyncio.to_thread(self.save, payload)


class PartialResponseResolver:
    """Finds a prior in-progress snapshot for the respondent.

    The resolver listens to a FormSession. A lookup runs when the email
    becomes plausible (empty or malformed before) or changes to another
    plausible address. Nothing found, or a failed lookup, is not an error.
    """

    def __init__(
        self,
        api: ApiClient,
        policy: ResumePolicy = ResumePolicy.NOTIFY,
        on_available: Optional[Callable[[PartialResponse], None]] = None,
    ):
        """Initialize the resolver.

        Args:
            api: API client used for the lookup
            policy: NOTIFY flags availability, HYDRATE overlays the answers
            on_available: Called with the snapshot once one is found
        """
        self.api = api
        self.policy = ResumePolicy(policy)
        self.on_available = on_available
        self.available: Optional[PartialResponse] = None
        self._resolved_email: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None

    def lookup(self, assessment_id: int, email: str) -> Optional[PartialResponse]:
        """Return the most recent non-empty snapshot, if any (blocking).

        Args:
            assessment_id: Assessment being taken
            email: Respondent email
        """
        try:
            snapshots = self.api.get_partial_responses(assessment_id, email)
        except ApiError as e:
            # Backends answer 404 when nothing was saved yet
            logger.debug(f"No partial response found ({e.detail})")
            return None

        candidates = [snapshot for snapshot in snapshots if snapshot.has_answers()]
        if not candidates:
            return None

        dated = [snapshot for snapshot in candidates if snapshot.updated_at is not None]
        if dated:
            return max(dated, key=lambda snapshot: snapshot.updated_at)
        return candidates[-1]

    async def resolve(self, session: FormSession) -> Optional[PartialResponse]:
        """Look up a snapshot for the session's email and apply the policy.

        Returns:
            The snapshot found, or None
        """
        email = session.email
        if not RespondentEmail.is_plausible(email):
            return None

        snapshot = await asyncio.to_thread(self.lookup, session.assessment.id, email)
        if snapshot is None or session.email != email or session.is_submitted:
            return None

        self.available = snapshot
        logger.info(
            f"Partial response available for assessment {session.assessment.id}",
            extra={"respondent": RespondentEmail.mask(email)},
        )
        if self.policy == ResumePolicy.HYDRATE:
            session.hydrate(snapshot.answers)
        if self.on_available is not None:
            self.on_available(snapshot)
        return snapshot

    def handle_event(self, event: SessionEvent) -> None:
        """Session listener: schedule a lookup when the email becomes usable.

        Must be called from within a running event loop.
        """
        if event.kind != EventKind.EMAIL_CHANGED:
            return

        email = event.session.email
        if not RespondentEmail.is_plausible(email):
            self._resolved_email = None
            return
        if email == self._resolved_email:
            return

        self._resolved_email = email
        self.available = None
        self.cancel()
        self._pending = asyncio.get_running_loop().create_task(self.resolve(event.session))
        self._pending.add_done_callback(_log_failure)

    async def wait(self) -> None:
        """Wait for an outstanding lookup to finish."""
        if self._pending is not None and not self._pending.done():
            await asyncio.wait({self._pending})

    def cancel(self) -> None:
        """Abandon an outstanding lookup."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None


def _log_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Partial response lookup failed: {task.exception()}")
