"""Integration tests for the stored session table.

These tests verify the persistence layer of the session store:
- Insert, overwrite and delete per profile
- Unique profile constraint
- Conversion back into an AuthenticatedUser
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from assessment_portal.models.stored_session import StoredSession
from assessment_portal.schemas.auth import AuthenticatedUser


class TestStoredSessionIntegration:
    """Integration tests for StoredSession model."""

    def test_save_and_load(self, db_session, signed_in_user):
        StoredSession.save_user(db_session, "default", signed_in_user)
        db_session.commit()

        row = StoredSession.get_for_profile(db_session, "default")

        assert row is not None
        assert row.email == "dana@acme.io"
        assert row.user_id == 7
        assert row.updated_at is not None

    def test_save_overwrites_existing_row(self, db_session, signed_in_user):
        StoredSession.save_user(db_session, "default", signed_in_user)
        db_session.commit()

        StoredSession.save_user(
            db_session,
            "default",
            signed_in_user.model_copy(update={"token": "access-2", "is_admin": True}),
        )
        db_session.commit()

        rows = db_session.execute(select(StoredSession)).scalars().all()
        assert len(rows) == 1
        assert rows[0].access_token == "access-2"
        assert rows[0].is_admin is True

    def test_profile_is_unique(self, db_session, signed_in_user):
        db_session.add(StoredSession(profile="default", email="a@acme.io", access_token="x"))
        db_session.add(StoredSession(profile="default", email="b@acme.io", access_token="y"))

        with pytest.raises(IntegrityError):
            db_session.commit()

    def test_delete_for_profile(self, db_session, signed_in_user):
        StoredSession.save_user(db_session, "default", signed_in_user)
        db_session.commit()

        assert StoredSession.delete_for_profile(db_session, "default") is True
        db_session.commit()

        assert StoredSession.get_for_profile(db_session, "default") is None
        assert StoredSession.delete_for_profile(db_session, "default") is False

    def test_to_user_round_trip(self, db_session):
        user = AuthenticatedUser(email="lee@acme.io", token="t", refresh_token=None, is_admin=True, id=None)
        StoredSession.save_user(db_session, "lab", user)
        db_session.commit()

        assert StoredSession.get_for_profile(db_session, "lab").to_user() == user

    def test_repr_omits_tokens(self, db_session, signed_in_user):
        row = StoredSession.save_user(db_session, "default", signed_in_user)

        assert "access-1" not in repr(row)
        assert "dana@acme.io" in repr(row)
