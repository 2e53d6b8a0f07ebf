"""HTTP gateway to the assessment REST API.

Every call to the backend goes through ``ApiClient.request``, which attaches
the bearer token and the anti-forgery header, converts error payloads into
``ApiError`` and, when an access token has expired, refreshes it once and
replays the request.
"""

import threading
from typing import Any, Optional
from urllib.parse import urljoin

import requests
from pydantic import ValidationError

from assessment_portal.config import Settings, get_settings
from assessment_portal.schemas.assessment import Assessment, AssessmentSummary
from assessment_portal.schemas.auth import TokenPair, UserProfile
from assessment_portal.schemas.responses import (
    PartialResponse,
    ResponseRecord,
    SubmissionPayload,
)
from assessment_portal.services.session_store import SessionStore
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

# Methods that never carry the anti-forgery header
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}


class ApiError(Exception):
    """Raised when the API rejects a request or cannot be reached.

    Attributes:
        status_code: HTTP status, None when no response was received
        detail: Human-readable message from the backend
        field_errors: Field-specific messages keyed by field name
    """

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        field_errors: Optional[dict[str, str]] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.field_errors = field_errors or {}


class NetworkError(ApiError):
    """Raised when the request never produced an HTTP response."""
    pass


class SessionExpiredError(ApiError):
    """Raised when the access token expired and could not be refreshed.

    The session store has already been cleared; callers should send the
    user to the login surface.
    """
    pass


def extract_error(payload: Any, fallback: str) -> tuple[str, dict[str, str]]:
    """Pull a message and field errors out of an error body.

    Handles ``{"detail": "..."}`` as well as field maps such as
    ``{"respondent_email": ["Enter a valid email address."]}``.

    Args:
        payload: Decoded JSON body (any shape)
        fallback: Message used when the body carries nothing useful

    Returns:
        Tuple of (detail, field_errors)
    """
    if isinstance(payload, dict):
        if payload.get("detail"):
            return str(payload["detail"]), {}

        field_errors: dict[str, str] = {}
        for field, messages in payload.items():
            if isinstance(messages, list):
                field_errors[field] = " ".join(str(m) for m in messages)
            elif isinstance(messages, str):
                field_errors[field] = messages
        if field_errors:
            first_field, first_message = next(iter(field_errors.items()))
            if first_field == "non_field_errors":
                return first_message, field_errors
            return f"{first_field}: {first_message}", field_errors

    if isinstance(payload, list) and payload:
        return " ".join(str(item) for item in payload), {}

    if isinstance(payload, str) and payload.strip():
        return payload.strip(), {}

    return fallback, {}


def as_list(data: Any) -> list:
    """Unwrap list endpoints that may or may not be paginated."""
    if isinstance(data, dict) and isinstance(data.get("results"), list):
        return data["results"]
    if isinstance(data, list):
        return data
    return []


class ApiClient:
    """Single HTTP entry point for the assessment API.

    Usage:
        client = ApiClient(store)
        assessment = client.get_assessment(12)
        client.submit_response(payload)
    """

    def __init__(
        self,
        store: SessionStore,
        settings: Optional[Settings] = None,
        http: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            store: Session store supplying and receiving tokens
            settings: Application settings (defaults to get_settings())
            http: requests session to use (cookies persist across calls)
        """
        self.store = store
        self.settings = settings or get_settings()
        self.http = http or requests.Session()
        self._refresh_lock = threading.Lock()

    def url(self, path: str) -> str:
        """Resolve an API-relative path against the base URL."""
        return urljoin(self.settings.api_base_url, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        authenticated: bool = True,
    ) -> Any:
        """Send a request and return the decoded body.

        A 401 on an authenticated request triggers one token refresh and
        one replay of the same request. A second 401 is returned to the
        caller as an ApiError. A rejected token with nothing to refresh it
        with ends the session.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            json: JSON body
            params: Query parameters
            authenticated: Attach the bearer token and allow refresh

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            ApiError: If the backend answers with an error status
            NetworkError: If no response was received
            SessionExpiredError: If the token could not be refreshed
        """
        method = method.upper()
        url = self.url(path)
        retried = False

        while True:
            token = self.store.access_token if authenticated else None
            headers = self._build_headers(method, token)

            try:
                response = self.http.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=headers,
                    timeout=self.settings.request_timeout_seconds,
                )
            except requests.RequestException as e:
                logger.warning(f"{method} {path} failed: {e}")
                raise NetworkError(str(e)) from e

            if (
                response.status_code == 401
                and authenticated
                and not retried
                and (token or self.store.refresh_token)
            ):
                retried = True
                logger.info(f"{method} {path} returned 401, refreshing token")
                self._refresh_after_expiry(token)
                continue

            return self._handle_response(method, path, response)

    def _build_headers(self, method: str, token: Optional[str]) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if method not in SAFE_METHODS:
            csrf_token = self.http.cookies.get(self.settings.csrf_cookie_name)
            if csrf_token:
                headers[self.settings.csrf_header_name] = csrf_token
        return headers

    def _refresh_after_expiry(self, failed_token: Optional[str]) -> None:
        """Refresh the access token unless a concurrent request already did.

        Args:
            failed_token: Token the rejected request was sent with

        Raises:
            SessionExpiredError: If there is no refresh token or refreshing
                fails (store is cleared)
        """
        with self._refresh_lock:
            current = self.store.access_token
            if current is not None and current != failed_token:
                logger.debug("Token already refreshed by a concurrent request")
                return

            refresh = self.store.refresh_token
            if not refresh:
                logger.info("Access token rejected and no refresh token held")
                self.store.clear()
                raise SessionExpiredError("Session expired. Please log in again.", status_code=401)

            try:
                pair = self.refresh_token(refresh)
            except (ApiError, ValidationError) as e:
                logger.warning(f"Token refresh failed: {e}")
                self.store.clear()
                raise SessionExpiredError(
                    "Session expired. Please log in again.", status_code=401
                ) from e

            self.store.update_tokens(pair.access, pair.refresh)
            logger.info("Access token refreshed")

    def _handle_response(self, method: str, path: str, response: requests.Response) -> Any:
        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            detail, field_errors = extract_error(
                payload, f"Request failed with status {response.status_code}"
            )
            logger.warning(f"{method} {path} -> {response.status_code}: {detail}")
            raise ApiError(detail, status_code=response.status_code, field_errors=field_errors)

        logger.debug(f"{method} {path} -> {response.status_code}")
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # Auth

    def fetch_csrf_token(self) -> bool:
        """Ask the backend to set the CSRF cookie.

        Returns:
            True if the cookie endpoint answered successfully
        """
        try:
            self.request("GET", "auth/csrf/", authenticated=False)
        except ApiError as e:
            logger.error(f"Failed to fetch CSRF token: {e}")
            return False
        logger.info("CSRF token fetched successfully")
        return True

    def obtain_token(self, email: str, password: str) -> TokenPair:
        """Exchange credentials for an access/refresh pair."""
        data = self.request(
            "POST",
            "auth/token/",
            json={"username": email, "password": password},
            authenticated=False,
        )
        return TokenPair.model_validate(data)

    def refresh_token(self, refresh: str) -> TokenPair:
        """Exchange a refresh token for a new pair."""
        data = self.request(
            "POST",
            "auth/token/refresh/",
            json={"refresh": refresh},
            authenticated=False,
        )
        return TokenPair.model_validate(data)

    def register(self, data: dict) -> Any:
        return self.request("POST", "auth/register/", json=data, authenticated=False)

    def forgot_password(self, email: str) -> Any:
        return self.request("POST", "auth/password-reset/", json={"email": email}, authenticated=False)

    def reset_password(self, token: str, password: str) -> Any:
        return self.request(
            "POST",
            "auth/password-reset/confirm/",
            json={"token": token, "password": password},
            authenticated=False,
        )

    def get_user_profile(self) -> UserProfile:
        return UserProfile.model_validate(self.request("GET", "auth/profile/"))

    def update_user_profile(self, data: dict) -> UserProfile:
        return UserProfile.model_validate(self.request("PATCH", "auth/profile/", json=data))

    def change_password(self, data: dict) -> Any:
        return self.request("POST", "auth/password-change/", json=data)

    # Assessments

    def get_assessments(self) -> list[AssessmentSummary]:
        data = self.request("GET", "assessments/")
        return [AssessmentSummary.model_validate(item) for item in as_list(data)]

    def get_assessment(self, assessment_id: int) -> Assessment:
        data = self.request("GET", f"assessments/{assessment_id}/")
        return Assessment.model_validate(data)

    # Responses

    def submit_response(self, payload: SubmissionPayload) -> Any:
        return self.request("POST", "responses/", json=payload.model_dump())

    def get_responses(self, assessment_id: Optional[int] = None) -> list[ResponseRecord]:
        params = {"assessment_id": assessment_id} if assessment_id else None
        data = self.request("GET", "responses/list/", params=params)
        return [ResponseRecord.model_validate(item) for item in as_list(data)]

    def get_response(self, response_id: int) -> ResponseRecord:
        return ResponseRecord.model_validate(self.request("GET", f"responses/{response_id}/"))

    # Partial responses

    def save_partial_response(self, payload: SubmissionPayload) -> Optional[PartialResponse]:
        data = self.request("POST", "partial-responses/", json=payload.model_dump())
        return PartialResponse.model_validate(data) if isinstance(data, dict) else None

    def update_partial_response(
        self, partial_id: int, payload: SubmissionPayload
    ) -> Optional[PartialResponse]:
        data = self.request("PUT", f"partial-responses/{partial_id}/", json=payload.model_dump())
        return PartialResponse.model_validate(data) if isinstance(data, dict) else None

    def get_partial_responses(self, assessment_id: int, email: str) -> list[PartialResponse]:
        data = self.request(
            "GET",
            "partial-responses/",
            params={"assessment": assessment_id, "respondent_email": email},
        )
        return [PartialResponse.model_validate(item) for item in as_list(data)]

    def delete_partial_response(self, partial_id: int) -> None:
        self.request("DELETE", f"partial-responses/{partial_id}/")
