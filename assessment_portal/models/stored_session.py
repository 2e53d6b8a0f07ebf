"""StoredSession model for persisting the signed-in user between runs.

One row per profile holds the identity and token pair of the user that is
currently signed in. Logging out deletes the row.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, select, text
from sqlalchemy.orm import Mapped, Session, mapped_column

from assessment_portal.models.database import Base
from assessment_portal.schemas.auth import AuthenticatedUser


class StoredSession(Base):
    """Model for the persisted authentication state of a profile.

    Attributes:
        id: Primary key
        profile: Name of the local profile (one signed-in user per profile)
        email: Email the user signed in with
        access_token: Current bearer token
        refresh_token: Token used to renew the access token
        is_admin: Whether the user may reach admin surfaces
        user_id: Backend user identifier
        updated_at: Last time the row was written
    """

    __tablename__ = "stored_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    profile: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        comment="Local profile name"
    )

    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        comment="Email the user signed in with"
    )
    access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Bearer access token"
    )
    refresh_token: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Refresh token"
    )
    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether admin surfaces are accessible"
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Backend user identifier"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
        comment="Last update timestamp"
    )

    @classmethod
    def get_for_profile(cls, db: Session, profile: str) -> Optional["StoredSession"]:
        """Load the stored row for a profile.

        Args:
            db: Database session
            profile: Profile name

        Returns:
            StoredSession if one exists, None otherwise
        """
        return db.execute(
            select(cls).where(cls.profile == profile)
        ).scalar_one_or_none()

    @classmethod
    def save_user(cls, db: Session, profile: str, user: AuthenticatedUser) -> "StoredSession":
        """Insert or overwrite the stored user for a profile.

        Args:
            db: Database session
            profile: Profile name
            user: User to persist

        Returns:
            The persisted row (not yet committed)
        """
        row = cls.get_for_profile(db, profile)
        if row is None:
            row = cls(profile=profile)
            db.add(row)

        row.email = user.email
        row.access_token = user.token
        row.refresh_token = user.refresh_token
        row.is_admin = user.is_admin
        row.user_id = user.id
        return row

    @classmethod
    def delete_for_profile(cls, db: Session, profile: str) -> bool:
        """Delete the stored user for a profile.

        Returns:
            True if a row was deleted
        """
        row = cls.get_for_profile(db, profile)
        if row is None:
            return False
        db.delete(row)
        return True

    def to_user(self) -> AuthenticatedUser:
        """Convert the row back into an AuthenticatedUser."""
        return AuthenticatedUser(
            email=self.email,
            token=self.access_token,
            refresh_token=self.refresh_token,
            is_admin=self.is_admin,
            id=self.user_id,
        )

    def __repr__(self) -> str:
        """String representation for debugging (tokens omitted)."""
        return (
            f"<StoredSession(profile={self.profile}, "
            f"email={self.email}, is_admin={self.is_admin})>"
        )
