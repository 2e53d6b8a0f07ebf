"""Authentication service: login, logout and explicit token refresh."""

from typing import Optional

from pydantic import ValidationError

from assessment_portal.schemas.auth import (
    AuthenticatedUser,
    LoginResult,
    Registration,
    UserProfile,
)
from assessment_portal.services.api_client import ApiClient, ApiError
from assessment_portal.services.session_store import SessionStore
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)


class AuthService:
    """Signs users in and out against the token endpoints.

    Login is two calls: the token pair is obtained first and stored, then
    the profile is read with the new token to learn whether the user has
    admin rights.
    """

    def __init__(self, api: ApiClient, store: SessionStore):
        self.api = api
        self.store = store

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate and start a session.

        Args:
            email: Login email
            password: Password

        Returns:
            LoginResult with success flag and a user-facing error
        """
        email = (email or "").strip()
        if not email or not password:
            return LoginResult(success=False, error="Email and password are required")

        try:
            pair = self.api.obtain_token(email, password)
        except ApiError as e:
            logger.info(f"Login rejected: {e.detail}")
            return LoginResult(success=False, error=e.detail if e.status_code else "Login failed")
        except ValidationError as e:
            logger.error(f"Unexpected token response: {e}")
            return LoginResult(success=False, error="Login failed")

        # The profile call needs the new token, so store it first
        self.store.set_user(AuthenticatedUser(
            email=email,
            token=pair.access,
            refresh_token=pair.refresh,
        ))

        try:
            profile = self.api.get_user_profile()
        except (ApiError, ValidationError) as e:
            logger.error(f"Profile lookup after login failed: {e}")
            self.store.clear()
            return LoginResult(success=False, error="Login failed")

        self.store.set_user(AuthenticatedUser(
            email=email,
            token=self.store.access_token or pair.access,
            refresh_token=self.store.refresh_token,
            is_admin=profile.has_admin_rights,
            id=profile.id,
        ))
        logger.info(f"User {profile.id} logged in (admin={profile.has_admin_rights})")
        return LoginResult(success=True)

    def logout(self) -> None:
        """End the current session."""
        self.store.clear()

    def refresh(self) -> bool:
        """Refresh the access token now.

        Returns:
            True on success; on failure the user is logged out
        """
        refresh_token: Optional[str] = self.store.refresh_token
        if not refresh_token:
            return False

        try:
            pair = self.api.refresh_token(refresh_token)
        except (ApiError, ValidationError) as e:
            logger.warning(f"Explicit token refresh failed: {e}")
            self.logout()
            return False

        self.store.update_tokens(pair.access, pair.refresh)
        return True

    def register(self, registration: Registration) -> None:
        """Create a new account.

        Raises:
            ApiError: With field errors if the backend rejects the form
        """
        self.api.register(registration.model_dump(exclude_none=True))
        logger.info("Registration submitted")

    def forgot_password(self, email: str) -> None:
        """Ask the backend to mail a password reset link."""
        self.api.forgot_password(email.strip())
        logger.info("Password reset requested")

    def reset_password(self, token: str, password: str) -> None:
        """Set a new password using a reset token.

        Raises:
            ApiError: If the token is invalid or expired
        """
        self.api.reset_password(token, password)
        logger.info("Password reset completed")

    def get_profile(self) -> UserProfile:
        return self.api.get_user_profile()

    def update_profile(self, data: dict) -> UserProfile:
        """Update the signed-in user's profile and refresh the admin flag."""
        profile = self.api.update_user_profile(data)
        user = self.store.user
        if user is not None:
            self.store.set_user(user.model_copy(update={
                "is_admin": profile.has_admin_rights,
                "email": profile.email or user.email,
            }))
        return profile

    def change_password(self, old_password: str, new_password: str) -> None:
        self.api.change_password({"old_password": old_password, "new_password": new_password})
        logger.info("Password changed")

    def prepare(self) -> bool:
        """Fetch the CSRF cookie before the first unsafe request.

        Best effort; returns False when the backend could not be reached.
        """
        return self.api.fetch_csrf_token()
