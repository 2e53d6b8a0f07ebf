"""Assessment runner: one open assessment from load to submission.

The runner wires the pieces of the data flow together for a single
respondent. It fetches the assessment, builds the FormSession, starts the
countdown for timed assessments and subscribes autosave and the partial
response resolver to session events. ``close()`` releases the timer and
any pending autosave so nothing fires after the view is gone.
"""

import asyncio
import time
import uuid
from typing import Any, Callable, Optional

from assessment_portal.config import Settings, get_settings
from assessment_portal.schemas.responses import PartialResponse, SubmissionPayload
from assessment_portal.schemas.session import SessionView, StepView, TimerView
from assessment_portal.services.api_client import ApiClient
from assessment_portal.services.assessment_fetcher import AssessmentFetcher
from assessment_portal.services.autosave import AutosaveCoordinator
from assessment_portal.services.countdown import CountdownTimer
from assessment_portal.services.form_engine import FormEngineError, FormSession
from assessment_portal.services.partial_responses import (
    PartialResponseResolver,
    PartialResponseWriter,
    ResumePolicy,
)
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


class RunnerNotOpenError(FormEngineError):
    """Raised when a runner is used before ``open()`` or after ``close()``."""
    pass


class AssessmentRunner:
    """Controller for one respondent taking one assessment."""

    def __init__(
        self,
        api: ApiClient,
        fetcher: Optional[AssessmentFetcher] = None,
        settings: Optional[Settings] = None,
        session_id: Optional[str] = None,
    ):
        self.api = api
        self.fetcher = fetcher or AssessmentFetcher(api)
        self.settings = settings or get_settings()
        self.session_id = session_id or uuid.uuid4().hex
        self.writer = PartialResponseWriter(api)
        self.autosave = AutosaveCoordinator(
            self.writer.save_async,
            debounce_seconds=self.settings.autosave_debounce_seconds,
        )
        self.resolver = PartialResponseResolver(
            api,
            policy=ResumePolicy(self.settings.partial_response_policy),
            on_available=self._on_partial_available,
        )
        self.countdown: Optional[CountdownTimer] = None
        self._session: Optional[FormSession] = None
        self._unsubscribers: list = []
        self._closed = False

    @property
    def session(self) -> FormSession:
        if self._session is None or self._closed:
            raise RunnerNotOpenError("No assessment is open")
        return self._session

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._closed

    async def open(self, assessment_id: int, email: str = "") -> FormSession:
        """Load the assessment and start a blank session.

        Args:
            assessment_id: Assessment to take
            email: Respondent email, if already known

        Raises:
            AssessmentLoadError: If the assessment cannot be loaded
        """
        assessment = await self.fetcher.fetch(assessment_id)
        session = FormSession(
            assessment,
            questions_per_step=self.settings.questions_per_step,
        )
        self._session = session
        self._unsubscribers = [
            session.subscribe(self.autosave.handle_event),
            session.subscribe(self.resolver.handle_event),
        ]

        if assessment.time_limit_seconds:
            self.countdown = CountdownTimer(
                assessment.time_limit_seconds,
                on_expire=self._on_time_expired,
            )
            self.countdown.start()

        logger.info(
            f"Opened assessment {assessment.id} ({len(session.steps)} steps)",
            extra={"session_id": self.session_id, "assessment_id": assessment.id},
        )

        if email:
            session.set_email(email)
        return session

    # Delegated mutations

    def set_email(self, email: str) -> None:
        self.session.set_email(email)

    def set_answer(self, question_index: int, value: Any) -> None:
        self.session.set_answer(question_index, value)

    def advance(self) -> int:
        return self.session.advance()

    def retreat(self) -> int:
        return self.session.retreat()

    def go_to_step(self, index: int) -> int:
        return self.session.go_to_step(index)

    def resume(self) -> bool:
        """Hydrate the session from the snapshot the resolver found.

        Returns:
            False when no snapshot is available
        """
        snapshot = self.resolver.available
        if snapshot is None:
            return False
        self.session.hydrate(snapshot.answers)
        logger.info(
            "Session resumed from saved progress",
            extra={"session_id": self.session_id, "assessment_id": snapshot.assessment},
        )
        return True

    async def submit(self) -> Any:
        """Submit the response; on success the runner is closed.

        Raises:
            FormValidationError: If required answers or the email are missing
            SubmissionError: If the API rejected the submission
        """
        result = await self.session.submit(self._send)
        await self.close()
        return result

    async def _send(self, payload: SubmissionPayload) -> Any:
        return await asyncio.to_thread(self.api.submit_response, payload)

    async def close(self) -> None:
        """Dispose of the session: stop the countdown and pending work."""
        if self._closed:
            return
        self._closed = True
        if self.countdown is not None:
            self.countdown.stop()
        self.resolver.cancel()
        await self.autosave.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        logger.debug("Assessment runner closed", extra={"session_id": self.session_id})

    def view(self) -> SessionView:
        """Describe the current state for display.

        Available after submission too, so callers can render confirmation.
        """
        if self._session is None:
            raise RunnerNotOpenError("No assessment is open")
        session = self._session
        payload = session.build_submission_payload()

        timer = None
        if self.countdown is not None:
            timer = TimerView(
                remaining_seconds=self.countdown.remaining,
                remaining_text=self.countdown.format_remaining(),
                fraction_remaining=self.countdown.fraction_remaining(),
                urgency=self.countdown.urgency(),
                expired=self.countdown.expired,
            )

        return SessionView(
            session_id=self.session_id,
            assessment_id=session.assessment.id,
            title=session.assessment.title,
            email=session.email,
            current_step=session.current_step,
            steps=[
                StepView(
                    index=step.index,
                    title=step.title,
                    is_info=step.is_info,
                    question_ids=[question.id for question in step.questions],
                )
                for step in session.steps
            ],
            progress=session.progress,
            answers=payload.answers,
            last_saved_at=self.autosave.last_saved_at,
            is_saving=self.autosave.is_saving,
            partial_available=self.resolver.available is not None,
            timer=timer,
            submitted=session.is_submitted,
        )

    def _on_partial_available(self, snapshot: PartialResponse) -> None:
        if snapshot.id is not None:
            self.writer.adopt(snapshot)

    def _on_time_expired(self) -> None:
        # The form stays open; expiry only changes what is displayed
        logger.warning(
            "Time limit reached; the form remains open",
            extra={"session_id": self.session_id},
        )


class RunnerRegistry:
    """Open runners keyed by session id.

    Runners untouched for longer than ``idle_timeout_seconds`` are closed
    by ``expire_idle()``, so abandoned sessions do not keep their timers
    and pending saves alive. A timeout of 0 keeps runners until discarded.
    """

    def __init__(
        self,
        idle_timeout_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout_seconds = idle_timeout_seconds
        self.clock = clock
        self._runners: dict[str, AssessmentRunner] = {}
        self._touched: dict[str, float] = {}

    def add(self, runner: AssessmentRunner) -> AssessmentRunner:
        self._runners[runner.session_id] = runner
        self._touched[runner.session_id] = self.clock()
        return runner

    def get(self, session_id: str) -> Optional[AssessmentRunner]:
        """Look up a runner and mark it as recently used."""
        runner = self._runners.get(session_id)
        if runner is not None:
            self._touched[session_id] = self.clock()
        return runner

    async def discard(self, session_id: str) -> bool:
        """Close and forget a runner.

        Returns:
            True if a runner was registered under the id
        """
        runner = self._runners.pop(session_id, None)
        self._touched.pop(session_id, None)
        if runner is None:
            return False
        await runner.close()
        return True

    async def expire_idle(self) -> int:
        """Close runners idle for longer than the timeout.

        Returns:
            Number of runners closed
        """
        if not self.idle_timeout_seconds:
            return 0
        cutoff = self.clock() - self.idle_timeout_seconds
        idle = [sid for sid, touched in self._touched.items() if touched < cutoff]
        for session_id in idle:
            await self.discard(session_id)
        if idle:
            logger.info(f"Closed {len(idle)} idle assessment session(s)")
        return len(idle)

    async def close_all(self) -> None:
        for session_id in list(self._runners):
            await self.discard(session_id)

    def __len__(self) -> int:
        return len(self._runners)
