"""Unit tests for the API gateway client."""

import json
import threading
from unittest.mock import MagicMock

import pytest
import requests
from requests.cookies import RequestsCookieJar

from assessment_portal.schemas.responses import AnswerPayload, SubmissionPayload
from assessment_portal.services.api_client import (
    ApiClient,
    ApiError,
    NetworkError,
    SessionExpiredError,
    as_list,
    extract_error,
)


def make_response(status_code: int, body=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = b"" if body is None else json.dumps(body).encode()
    return response


@pytest.fixture
def http() -> MagicMock:
    http = MagicMock()
    http.cookies = RequestsCookieJar()
    return http


@pytest.fixture
def client(store, settings, http) -> ApiClient:
    return ApiClient(store, settings=settings, http=http)


class TestExtractError:
    """Test suite for error payload extraction."""

    def test_detail_message(self):
        assert extract_error({"detail": "Not found."}, "fallback") == ("Not found.", {})

    def test_field_errors(self):
        detail, fields = extract_error(
            {"respondent_email": ["Enter a valid email address."]}, "fallback"
        )

        assert detail == "respondent_email: Enter a valid email address."
        assert fields == {"respondent_email": "Enter a valid email address."}

    def test_non_field_errors(self):
        detail, _ = extract_error({"non_field_errors": ["Already submitted."]}, "fallback")

        assert detail == "Already submitted."

    @pytest.mark.parametrize("payload", [None, {}, "", []])
    def test_fallback(self, payload):
        assert extract_error(payload, "Request failed") == ("Request failed", {})


class TestAsList:
    """Test suite for list unwrapping."""

    def test_paginated(self):
        assert as_list({"count": 1, "results": [{"id": 1}]}) == [{"id": 1}]

    def test_plain_list(self):
        assert as_list([1, 2]) == [1, 2]

    def test_unexpected_shape(self):
        assert as_list({"detail": "x"}) == []


class TestApiClientRequests:
    """Test suite for request building and response handling."""

    def test_url_joins_base(self, client):
        assert client.url("/assessments/12/") == "http://api.test/api/assessments/12/"

    def test_bearer_token_attached(self, client, store, http, signed_in_user):
        store.set_user(signed_in_user)
        http.request.return_value = make_response(200, [])

        client.request("GET", "assessments/")

        headers = http.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer access-1"

    def test_unauthenticated_request_has_no_bearer(self, client, store, http, signed_in_user):
        store.set_user(signed_in_user)
        http.request.return_value = make_response(200, {"access": "a"})

        client.request("POST", "auth/token/", json={}, authenticated=False)

        assert "Authorization" not in http.request.call_args.kwargs["headers"]

    def test_csrf_header_only_on_unsafe_methods(self, client, http):
        http.cookies.set("csrftoken", "csrf-abc")
        http.request.return_value = make_response(200, {})

        client.request("GET", "assessments/")
        get_headers = http.request.call_args.kwargs["headers"]
        client.request("POST", "responses/", json={})
        post_headers = http.request.call_args.kwargs["headers"]

        assert "X-CSRFToken" not in get_headers
        assert post_headers["X-CSRFToken"] == "csrf-abc"

    def test_empty_body_returns_none(self, client, http):
        http.request.return_value = make_response(204)

        assert client.request("DELETE", "partial-responses/3/") is None

    def test_error_status_raises_api_error(self, client, http):
        http.request.return_value = make_response(400, {"answers": ["This field is required."]})

        with pytest.raises(ApiError) as exc_info:
            client.request("POST", "responses/", json={})

        assert exc_info.value.status_code == 400
        assert exc_info.value.field_errors == {"answers": "This field is required."}

    def test_connection_failure_raises_network_error(self, client, http):
        http.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(NetworkError):
            client.request("GET", "assessments/")

    def test_timeout_from_settings(self, client, http):
        http.request.return_value = make_response(200, [])

        client.request("GET", "assessments/")

        assert http.request.call_args.kwargs["timeout"] == 10.0


class TestApiClientRefresh:
    """Test suite for refresh-once on 401."""

    def test_refreshes_and_replays_once(self, client, store, http, signed_in_user):
        store.set_user(signed_in_user)
        http.request.side_effect = [
            make_response(401, {"detail": "Token expired"}),
            make_response(200, {"access": "access-2", "refresh": "refresh-2"}),
            make_response(200, [{"id": 1, "title": "Pulse"}]),
        ]

        data = client.request("GET", "assessments/")

        assert data == [{"id": 1, "title": "Pulse"}]
        assert store.access_token == "access-2"
        assert store.refresh_token == "refresh-2"
        refresh_call = http.request.call_args_list[1]
        assert refresh_call.args[1].endswith("auth/token/refresh/")
        assert refresh_call.kwargs["json"] == {"refresh": "refresh-1"}
        replay_headers = http.request.call_args_list[2].kwargs["headers"]
        assert replay_headers["Authorization"] == "Bearer access-2"

    def test_second_401_is_not_retried(self, client, store, http, signed_in_user):
        store.set_user(signed_in_user)
        http.request.side_effect = [
            make_response(401, {"detail": "Token expired"}),
            make_response(200, {"access": "access-2"}),
            make_response(401, {"detail": "Still no"}),
        ]

        with pytest.raises(ApiError) as exc_info:
            client.request("GET", "assessments/")

        assert exc_info.value.status_code == 401
        assert http.request.call_count == 3
        assert store.is_authenticated

    def test_failed_refresh_clears_store(self, client, store, http, signed_in_user):
        """Test a rejected refresh token ends the session."""
        store.set_user(signed_in_user)
        http.request.side_effect = [
            make_response(401, {"detail": "Token expired"}),
            make_response(401, {"detail": "Token is invalid or expired"}),
        ]

        with pytest.raises(SessionExpiredError, match="Session expired"):
            client.request("GET", "assessments/")

        assert not store.is_authenticated

    def test_anonymous_401_is_plain_error(self, client, http):
        http.request.return_value = make_response(401, {"detail": "Authentication required"})

        with pytest.raises(ApiError) as exc_info:
            client.request("GET", "responses/list/")

        assert not isinstance(exc_info.value, SessionExpiredError)
        assert http.request.call_count == 1

    def test_rejected_token_without_refresh_token_ends_session(self, client, store, http, signed_in_user):
        """Test a stale access token is cleared when it cannot be refreshed."""
        store.set_user(signed_in_user.model_copy(update={"refresh_token": None}))
        http.request.return_value = make_response(401, {"detail": "Token expired"})

        with pytest.raises(SessionExpiredError) as exc_info:
            client.request("GET", "responses/list/")

        assert exc_info.value.status_code == 401
        assert not store.is_authenticated
        assert store.access_token is None
        assert http.request.call_count == 1

    def test_concurrent_refresh_happens_once(self, client, store, http, signed_in_user):
        """Test a request whose token was already refreshed skips refreshing."""
        store.set_user(signed_in_user)
        store.update_tokens("access-2")

        client._refresh_after_expiry("access-1")

        http.request.assert_not_called()
        assert store.access_token == "access-2"

    def test_racing_requests_refresh_once(self, client, store, http, signed_in_user):
        store.set_user(signed_in_user)
        refresh_calls = []
        barrier = threading.Barrier(2)

        def respond(method, url, **kwargs):
            if url.endswith("auth/token/refresh/"):
                refresh_calls.append(url)
                return make_response(200, {"access": "access-2"})
            if kwargs["headers"].get("Authorization") == "Bearer access-1":
                barrier.wait(timeout=5)
                return make_response(401, {"detail": "Token expired"})
            return make_response(200, {"ok": True})

        http.request.side_effect = respond
        results = []
        threads = [
            threading.Thread(target=lambda: results.append(client.request("GET", "assessments/")))
            for _ in range(2)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert results == [{"ok": True}, {"ok": True}]
        assert len(refresh_calls) == 1


class TestApiClientEndpoints:
    """Test suite for endpoint helpers."""

    def test_obtain_token_sends_username(self, client, http):
        http.request.return_value = make_response(200, {"access": "a", "refresh": "r"})

        pair = client.obtain_token("dana@acme.io", "pw")

        assert pair.access == "a"
        assert http.request.call_args.kwargs["json"] == {"username": "dana@acme.io", "password": "pw"}

    def test_get_assessment_parses_questions(self, client, http, assessment_data):
        http.request.return_value = make_response(200, assessment_data)

        assessment = client.get_assessment(12)

        assert assessment.id == 12
        assert len(assessment.questions) == 4
        assert http.request.call_args.args[1] == "http://api.test/api/assessments/12/"

    def test_submit_response_body(self, client, http):
        http.request.return_value = make_response(201, {"id": 77})
        payload = SubmissionPayload(
            assessment=12,
            respondent_email="dana@acme.io",
            answers=[AnswerPayload(question=102, answer_text="git,jira")],
        )

        assert client.submit_response(payload) == {"id": 77}
        assert http.request.call_args.kwargs["json"] == {
            "assessment": 12,
            "respondent_email": "dana@acme.io",
            "answers": [{"question": 102, "answer_text": "git,jira"}],
        }

    def test_partial_lookup_params(self, client, http):
        http.request.return_value = make_response(200, {"results": [
            {"id": 4, "assessment": 12, "respondent_email": "dana@acme.io",
             "answers": [{"question": 101, "answer_text": "x"}]},
        ]})

        partials = client.get_partial_responses(12, "dana@acme.io")

        assert partials[0].id == 4
        assert http.request.call_args.kwargs["params"] == {
            "assessment": 12, "respondent_email": "dana@acme.io"
        }

    def test_update_partial_uses_put(self, client, http):
        http.request.return_value = make_response(200, {
            "id": 4, "assessment": 12, "respondent_email": "dana@acme.io", "answers": [],
        })

        client.update_partial_response(4, SubmissionPayload(assessment=12, respondent_email="dana@acme.io"))

        assert http.request.call_args.args[:2] == ("PUT", "http://api.test/api/partial-responses/4/")

    def test_fetch_csrf_token_is_best_effort(self, client, http):
        http.request.side_effect = requests.ConnectionError("offline")

        assert client.fetch_csrf_token() is False
