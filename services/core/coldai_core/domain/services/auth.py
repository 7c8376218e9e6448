"""Dashboard session validation.

Users sign in with the hosted auth provider; its callback stores a row in
``dashboard_sessions`` and sets the ``session`` cookie. This service
resolves that cookie to a user.
"""

import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from coldai_core.domain.models import DashboardSession, DashboardUser
from coldai_core.domain.timestamps import as_utc, to_naive_utc, utcnow


class AuthService:
    """Service for session operations."""

    def __init__(self, db: DBSession):
        """Initialize the auth service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def ensure_user(self, user_id: str, email: str) -> DashboardUser:
        """Mirror an auth-provider user locally."""
        user = self.db.get(DashboardUser, user_id)
        if user is None:
            user = DashboardUser(id=user_id, email=email)
            self.db.add(user)
            self.db.flush()
        return user

    def create_session(self, user_id: str, expire_hours: int = 24 * 7) -> str:
        """Create a new session for a user.

        Returns:
            The session ID (UUID string).
        """
        session_id = str(uuid.uuid4())
        now = utcnow()
        self.db.add(
            DashboardSession(
                id=session_id,
                user_id=user_id,
                created_at=to_naive_utc(now),
                expires_at=to_naive_utc(now + timedelta(hours=expire_hours)),
            )
        )
        return session_id

    def validate_session(self, session_id: str) -> Optional[DashboardUser]:
        """Return the session's user, or None if unknown or expired."""
        if not session_id:
            return None

        session = self.db.query(DashboardSession).filter_by(id=session_id).first()
        if session is None:
            return None
        if as_utc(session.expires_at) < utcnow():
            return None

        return self.db.query(DashboardUser).filter_by(id=session.user_id).first()

    def invalidate_session(self, session_id: str) -> None:
        self.db.query(DashboardSession).filter_by(id=session_id).delete()

    def cleanup_expired_sessions(self) -> int:
        """Remove all expired sessions and return how many were removed."""
        now = to_naive_utc(utcnow())
        return (
            self.db.query(DashboardSession)
            .filter(DashboardSession.expires_at < now)
            .delete()
        )
