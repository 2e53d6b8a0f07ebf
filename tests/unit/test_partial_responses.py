"""Unit tests for partial response writing and resolution."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from assessment_portal.schemas.responses import PartialResponse, SavedAnswer, SubmissionPayload
from assessment_portal.services.api_client import ApiError
from assessment_portal.services.form_engine import EventKind, FormSession, SessionEvent
from assessment_portal.services.partial_responses import (
    PartialResponseResolver,
    PartialResponseWriter,
    ResumePolicy,
)


def snapshot(partial_id=None, email="dana@acme.io", answers=None, updated_at=None) -> PartialResponse:
    return PartialResponse(
        id=partial_id,
        assessment=12,
        respondent_email=email,
        answers=answers if answers is not None else [SavedAnswer(question=101, answer_text="Saved text")],
        updated_at=updated_at,
    )


def payload(email="dana@acme.io") -> SubmissionPayload:
    return SubmissionPayload(assessment=12, respondent_email=email, answers=[])


class TestPartialResponseWriter:
    """Test suite for PartialResponseWriter."""

    def test_first_save_posts_then_updates(self, mock_api):
        """Test POST on the first save and PUT to the returned id afterwards."""
        mock_api.save_partial_response.return_value = snapshot(partial_id=31)
        mock_api.update_partial_response.return_value = snapshot(partial_id=31)
        writer = PartialResponseWriter(mock_api)

        writer.save(payload())
        writer.save(payload())

        mock_api.save_partial_response.assert_called_once()
        mock_api.update_partial_response.assert_called_once()
        assert mock_api.update_partial_response.call_args.args[0] == 31

    def test_email_change_starts_new_snapshot(self, mock_api):
        mock_api.save_partial_response.side_effect = [snapshot(partial_id=31), snapshot(partial_id=32)]
        writer = PartialResponseWriter(mock_api)

        writer.save(payload())
        writer.save(payload(email="lee@acme.io"))

        assert mock_api.save_partial_response.call_count == 2
        mock_api.update_partial_response.assert_not_called()
        assert writer.partial_id == 32

    def test_adopted_snapshot_is_updated(self, mock_api):
        writer = PartialResponseWriter(mock_api)
        writer.adopt(snapshot(partial_id=9))

        writer.save(payload())

        mock_api.save_partial_response.assert_not_called()
        assert mock_api.update_partial_response.call_args.args[0] == 9

    def test_errors_propagate(self, mock_api):
        mock_api.save_partial_response.side_effect = ApiError("Bad request", status_code=400)
        writer = PartialResponseWriter(mock_api)

        with pytest.raises(ApiError):
            writer.save(payload())


class TestPartialResponseResolverLookup:
    """Test suite for snapshot lookup."""

    def test_none_found(self, mock_api):
        resolver = PartialResponseResolver(mock_api)

        assert resolver.lookup(12, "dana@acme.io") is None

    def test_lookup_failure_is_not_an_error(self, mock_api):
        mock_api.get_partial_responses.side_effect = ApiError("Not found", status_code=404)
        resolver = PartialResponseResolver(mock_api)

        assert resolver.lookup(12, "dana@acme.io") is None

    def test_empty_snapshots_are_skipped(self, mock_api):
        mock_api.get_partial_responses.return_value = [
            snapshot(partial_id=1, answers=[SavedAnswer(question=101, answer_text="")]),
        ]
        resolver = PartialResponseResolver(mock_api)

        assert resolver.lookup(12, "dana@acme.io") is None

    def test_most_recent_snapshot_wins(self, mock_api):
        mock_api.get_partial_responses.return_value = [
            snapshot(partial_id=1, updated_at=datetime(2026, 3, 1, tzinfo=timezone.utc)),
            snapshot(partial_id=2, updated_at=datetime(2026, 3, 9, tzinfo=timezone.utc)),
            snapshot(partial_id=3, updated_at=datetime(2026, 3, 4, tzinfo=timezone.utc)),
        ]
        resolver = PartialResponseResolver(mock_api)

        assert resolver.lookup(12, "dana@acme.io").id == 2


class TestPartialResponseResolverPolicy:
    """Test suite for resume policies driven by email changes."""

    @pytest.mark.asyncio
    async def test_notify_flags_without_touching_answers(self, mock_api, assessment):
        mock_api.get_partial_responses.return_value = [snapshot(partial_id=5)]
        found = MagicMock()
        resolver = PartialResponseResolver(mock_api, ResumePolicy.NOTIFY, on_available=found)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme.io")
        await resolver.wait()

        assert resolver.available.id == 5
        assert session.answers[0].is_empty()
        found.assert_called_once_with(resolver.available)

    @pytest.mark.asyncio
    async def test_hydrate_overlays_snapshot(self, mock_api, assessment):
        mock_api.get_partial_responses.return_value = [snapshot(partial_id=5)]
        resolver = PartialResponseResolver(mock_api, ResumePolicy.HYDRATE)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme.io")
        await resolver.wait()

        assert session.answers[0].value.value == "Saved text"

    @pytest.mark.asyncio
    async def test_implausible_email_does_not_look_up(self, mock_api, assessment):
        resolver = PartialResponseResolver(mock_api)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme")
        await resolver.wait()

        mock_api.get_partial_responses.assert_not_called()
        assert resolver.available is None

    @pytest.mark.asyncio
    async def test_same_email_is_looked_up_once(self, mock_api, assessment):
        resolver = PartialResponseResolver(mock_api)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme.io")
        await resolver.wait()
        resolver.handle_event(SessionEvent(kind=EventKind.EMAIL_CHANGED, session=session))
        await resolver.wait()

        assert mock_api.get_partial_responses.call_count == 1

    @pytest.mark.asyncio
    async def test_email_becoming_plausible_again_looks_up_again(self, mock_api, assessment):
        resolver = PartialResponseResolver(mock_api)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme.io")
        await resolver.wait()
        session.set_email("dana@acme")
        session.set_email("dana@acme.io")
        await resolver.wait()

        assert mock_api.get_partial_responses.call_count == 2

    @pytest.mark.asyncio
    async def test_other_email_triggers_new_lookup(self, mock_api, assessment):
        resolver = PartialResponseResolver(mock_api)
        session = FormSession(assessment)
        session.subscribe(resolver.handle_event)

        session.set_email("dana@acme.io")
        await resolver.wait()
        session.set_email("lee@acme.io")
        await resolver.wait()

        emails = [call.args[1] for call in mock_api.get_partial_responses.call_args_list]
        assert emails == ["dana@acme.io", "lee@acme.io"]
