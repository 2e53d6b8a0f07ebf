"""Unit tests for the autosave coordinator."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from assessment_portal.services.autosave import AutosaveCoordinator
from assessment_portal.services.form_engine import FormSession

DEBOUNCE = 0.02


def attach(session: FormSession, save) -> AutosaveCoordinator:
    autosave = AutosaveCoordinator(save, debounce_seconds=DEBOUNCE)
    session.subscribe(autosave.handle_event)
    return autosave


class TestAutosaveCoordinator:
    """Test suite for AutosaveCoordinator."""

    @pytest.mark.asyncio
    async def test_two_changes_in_window_save_once_with_latest_state(self, assessment):
        """Test a burst of changes is collapsed into one save."""
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        autosave = attach(session, save)

        session.set_answer(0, "first draft")
        session.set_answer(0, "second draft")
        await asyncio.sleep(DEBOUNCE * 5)
        await autosave.flush()

        save.assert_awaited_once()
        payload = save.call_args.args[0]
        assert payload.answers[0].answer_text == "second draft"
        assert autosave.save_count == 1
        assert autosave.last_saved_at is not None

    @pytest.mark.asyncio
    async def test_changes_in_separate_windows_save_twice(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        autosave = attach(session, save)

        session.set_answer(0, "one")
        await asyncio.sleep(DEBOUNCE * 5)
        session.set_answer(0, "two")
        await asyncio.sleep(DEBOUNCE * 5)
        await autosave.flush()

        assert save.await_count == 2

    @pytest.mark.asyncio
    async def test_no_save_without_email(self, assessment):
        """Test nothing is persisted while there is no identity to key it by."""
        session = FormSession(assessment)
        save = AsyncMock()
        autosave = attach(session, save)

        session.set_answer(0, "anonymous")
        await asyncio.sleep(DEBOUNCE * 5)

        save.assert_not_called()
        assert not autosave.has_pending

    @pytest.mark.asyncio
    async def test_clearing_email_cancels_pending_save(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        autosave = attach(session, save)

        session.set_answer(0, "typed")
        session.set_email("")
        await asyncio.sleep(DEBOUNCE * 5)

        save.assert_not_called()
        assert autosave.save_count == 0

    @pytest.mark.asyncio
    async def test_navigation_does_not_trigger_save(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        attach(session, save)

        session.advance()
        await asyncio.sleep(DEBOUNCE * 5)

        save.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_save_is_swallowed(self, assessment):
        """Test a failing save does not raise or record a save time."""
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock(side_effect=RuntimeError("backend down"))
        autosave = attach(session, save)

        session.set_answer(0, "lost")
        await asyncio.sleep(DEBOUNCE * 5)
        await autosave.flush()

        save.assert_awaited_once()
        assert autosave.last_saved_at is None
        assert autosave.save_count == 0

    @pytest.mark.asyncio
    async def test_flush_saves_pending_snapshot_immediately(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        autosave = AutosaveCoordinator(save, debounce_seconds=60)
        session.subscribe(autosave.handle_event)

        session.set_answer(0, "now")
        assert autosave.has_pending
        await autosave.flush()

        save.assert_awaited_once()
        assert not autosave.has_pending

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = AsyncMock()
        autosave = attach(session, save)

        session.set_answer(0, "never saved")
        await autosave.close()
        session.set_answer(0, "after close")
        await asyncio.sleep(DEBOUNCE * 5)

        save.assert_not_called()
        assert not autosave.has_pending


class SlowSave:
    """Save function that takes longer than the debounce window."""

    def __init__(self, delay: float):
        self.delay = delay
        self.running = 0
        self.peak = 0
        self.saved = []

    async def __call__(self, payload):
        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            await asyncio.sleep(self.delay)
            self.saved.append(payload.answers[0].answer_text)
        finally:
            self.running -= 1


class TestAutosaveSlowBackend:
    """Test saves that outlast the quiet period."""

    @pytest.mark.asyncio
    async def test_saves_never_overlap(self, assessment):
        """Test a change made during a running save is sent after it, not alongside."""
        session = FormSession(assessment, email="dana@acme.io")
        save = SlowSave(delay=DEBOUNCE * 10)
        autosave = attach(session, save)

        session.set_answer(0, "one")
        await asyncio.sleep(DEBOUNCE * 3)
        assert autosave.is_saving

        session.set_answer(0, "two")
        await asyncio.sleep(DEBOUNCE * 3)
        assert save.peak == 1

        await autosave.flush()

        assert save.peak == 1
        assert save.saved == ["one", "two"]
        assert autosave.save_count == 2
        assert not autosave.is_saving

    @pytest.mark.asyncio
    async def test_close_leaves_nothing_running(self, assessment):
        session = FormSession(assessment, email="dana@acme.io")
        save = SlowSave(delay=DEBOUNCE * 10)
        autosave = attach(session, save)

        session.set_answer(0, "one")
        await asyncio.sleep(DEBOUNCE * 3)
        session.set_answer(0, "two")
        await asyncio.sleep(DEBOUNCE * 3)
        await autosave.close()

        assert save.running == 0
        assert not autosave.is_saving

        await asyncio.sleep(DEBOUNCE * 15)
        assert save.saved == []
        assert save.running == 0
        assert autosave.last_saved_at is None
