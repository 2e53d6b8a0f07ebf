"""Session store holding the signed-in user's identity and tokens.

The store is an injectable service with an explicit lifecycle: ``hydrate()``
loads persisted state, ``set_user()``/``update_tokens()`` write through to
the database, and ``clear()`` tears the session down on logout or when a
token refresh fails. Interested parties subscribe to changes.
"""

import threading
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from assessment_portal.models.stored_session import StoredSession
from assessment_portal.schemas.auth import AuthenticatedUser
from assessment_portal.logging_config import get_logger

logger = get_logger(__name__)

SessionListener = Callable[[Optional[AuthenticatedUser]], None]


class SessionStore:
    """Process-wide holder of the current AuthenticatedUser.

    Reads are served from memory; every write is persisted through the
    given SQLAlchemy session factory so a restart can ``hydrate()`` the
    same user back.
    """

    def __init__(self, session_factory: sessionmaker, profile: str = "default"):
        """Initialize the store.

        Args:
            session_factory: Factory producing SQLAlchemy sessions
            profile: Name of the local profile this store manages
        """
        self._session_factory = session_factory
        self.profile = profile
        self._user: Optional[AuthenticatedUser] = None
        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []

    @property
    def user(self) -> Optional[AuthenticatedUser]:
        """Currently signed-in user, if any."""
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def is_admin(self) -> bool:
        return bool(self._user and self._user.is_admin)

    @property
    def access_token(self) -> Optional[str]:
        return self._user.token if self._user else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._user.refresh_token if self._user else None

    def hydrate(self) -> Optional[AuthenticatedUser]:
        """Load the persisted user for this profile into memory.

        Returns:
            The hydrated user, or None when nobody is signed in
        """
        db: Session = self._session_factory()
        try:
            row = StoredSession.get_for_profile(db, self.profile)
            user = row.to_user() if row is not None else None
        finally:
            db.close()

        with self._lock:
            self._user = user

        if user:
            logger.info(f"Hydrated session for profile '{self.profile}'")
        else:
            logger.debug(f"No stored session for profile '{self.profile}'")
        self._notify()
        return user

    def set_user(self, user: AuthenticatedUser) -> None:
        """Replace the signed-in user and persist it.

        Args:
            user: Newly authenticated user
        """
        with self._lock:
            self._persist(user)
            self._user = user
        logger.info(f"Session started for profile '{self.profile}' (admin={user.is_admin})")
        self._notify()

    def update_tokens(self, access: str, refresh: Optional[str] = None) -> AuthenticatedUser:
        """Swap in a freshly issued token pair.

        Args:
            access: New access token
            refresh: New refresh token; the old one is kept when omitted

        Returns:
            The updated user

        Raises:
            RuntimeError: If nobody is signed in
        """
        with self._lock:
            if self._user is None:
                raise RuntimeError("Cannot update tokens without a signed-in user")
            updated = self._user.model_copy(update={
                "token": access,
                "refresh_token": refresh or self._user.refresh_token,
            })
            self._persist(updated)
            self._user = updated
        logger.debug(f"Tokens refreshed for profile '{self.profile}'")
        self._notify()
        return updated

    def clear(self) -> None:
        """Sign out: forget the user in memory and in storage."""
        with self._lock:
            db: Session = self._session_factory()
            try:
                StoredSession.delete_for_profile(db, self.profile)
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()
            self._user = None
        logger.info(f"Session cleared for profile '{self.profile}'")
        self._notify()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback invoked with the user after every change.

        Returns:
            Function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _persist(self, user: AuthenticatedUser) -> None:
        db: Session = self._session_factory()
        try:
            StoredSession.save_user(db, self.profile, user)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._user)
            except Exception as e:
                logger.error(f"Session listener failed: {e}", exc_info=True)
