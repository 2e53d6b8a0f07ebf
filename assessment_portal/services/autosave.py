"""Autosave coordinator for in-progress assessment sessions.

Bursts of answer changes are collapsed into one save after a quiet period.
Saving is best effort: a failed save is logged and dropped, and the
respondent is never interrupted.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from assessment_portal.schemas.responses import SubmissionPayload
from assessment_portal.services.form_engine import FormSession, SessionEvent
from assessment_portal.services.respondent import RespondentEmail
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 1.0

SaveFunction = Callable[[SubmissionPayload], Awaitable[Any]]


class AutosaveCoordinator:
    """Debounces session changes into snapshot saves.

    Every change restarts the quiet-period timer; when it finally fires,
    the latest snapshot is saved. Nothing is saved while the respondent
    email is empty, since snapshots are keyed by it.

    Saves never overlap. If the timer fires while a save is running, the
    newer snapshot waits and goes out as soon as that save finishes.

    Usage:
        autosave = AutosaveCoordinator(writer.save_async, debounce_seconds=1.0)
        session.subscribe(autosave.handle_event)
        ...
        await autosave.close()
    """

    def __init__(
        self,
        save: SaveFunction,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        """Initialize the coordinator.

        Args:
            save: Coroutine function persisting a snapshot
            debounce_seconds: Quiet period before a save fires
        """
        self._save = save
        self.debounce_seconds = debounce_seconds
        self.last_saved_at: Optional[datetime] = None
        self.save_count = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[SubmissionPayload] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def is_saving(self) -> bool:
        """Whether a save call is currently running."""
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def has_pending(self) -> bool:
        """Whether a save is waiting for the quiet period to end."""
        return self._timer is not None

    def handle_event(self, event: SessionEvent) -> None:
        """Session listener: schedule a save for changes to answer data."""
        if event.mutates_answers:
            self.schedule(event.session)

    def schedule(self, session: FormSession) -> None:
        """Restart the quiet-period timer with the session's current state.

        Must be called from within a running event loop.
        """
        if self._closed:
            return

        self._cancel_timer()
        if not session.email:
            self._pending = None
            return

        self._pending = session.build_submission_payload()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self._fire_now()

    async def _run(self, payload: SubmissionPayload) -> None:
        masked = RespondentEmail.mask(payload.respondent_email)
        try:
            await self._save(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                f"Autosave failed for assessment {payload.assessment}: {e}",
                extra={"respondent": masked},
            )
            return

        self.last_saved_at = datetime.now(timezone.utc)
        self.save_count += 1
        logger.debug(
            f"Progress saved for assessment {payload.assessment}",
            extra={"respondent": masked},
        )

    async def flush(self) -> None:
        """Save a pending snapshot now and wait until nothing is in flight."""
        self._cancel_timer()
        while not self._closed:
            if not self.is_saving:
                if self._pending is None:
                    break
                self._fire_now()
            await asyncio.wait({self._in_flight})

    def _fire_now(self) -> None:
        # At most one save runs at a time; a payload that arrives meanwhile
        # stays in _pending and is sent when the running save finishes.
        if self._closed or self.is_saving:
            return
        payload, self._pending = self._pending, None
        if payload is None:
            return
        task = asyncio.get_running_loop().create_task(self._run(payload))
        task.add_done_callback(self._save_done)
        self._in_flight = task

    def _save_done(self, task: asyncio.Task) -> None:
        if self._in_flight is task:
            self._in_flight = None
        if self._closed or self._timer is not None:
            return
        if self._pending is not None:
            self._fire_now()

    async def close(self) -> None:
        """Cancel the pending timer, any queued snapshot and the running save."""
        self._closed = True
        self._cancel_timer()
        self._pending = None
        task, self._in_flight = self._in_flight, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
