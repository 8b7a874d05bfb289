"""Server-side login sessions."""
from datetime import timedelta
import hashlib
import secrets

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gatehouse.config import Settings, get_settings
from gatehouse.logging import get_logger
from gatehouse.models.auth import UserSession
from gatehouse.services import clock
from gatehouse.services.errors import InvalidSessionError

logger = get_logger(__name__)


def hash_session_token(token: str) -> str:
    """Hash a session token before persisting; the hash is the session id."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionStore:
    """Create, validate, extend and revoke sessions. One user may hold many."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    def create(
        self,
        user_id: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> tuple[UserSession, str]:
        """Persist a new session and return it with the client-held token."""
        token = secrets.token_urlsafe(32)
        now = clock.now()
        session = UserSession(
            id=hash_session_token(token),
            user_id=user_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            is_active=1,
            created_at=clock.to_iso(now),
            last_seen_at=clock.to_iso(now),
            expires_at=clock.to_iso(now + self.settings.session_ttl),
        )
        self.db.add(session)
        self.db.commit()
        return session, token

    def validate(self, token: str) -> UserSession:
        if not token:
            raise InvalidSessionError(reason="empty token")
        return self.validate_id(hash_session_token(token))

    def validate_id(self, session_id: str) -> UserSession:
        """Return the session if active and unexpired, and mark it as seen.

        The last-seen write is skipped while the stored value is younger than
        ``session_touch_interval_seconds``.
        """
        now = clock.now()
        now_iso = clock.to_iso(now)
        session = self.db.query(UserSession).filter(
            UserSession.id == session_id,
            UserSession.is_active == 1,
            UserSession.expires_at > now_iso,
        ).first()
        if session is None:
            raise InvalidSessionError(reason="unknown, revoked or expired")

        stale_before = clock.to_iso(now - timedelta(seconds=self.settings.session_touch_interval_seconds))
        if session.last_seen_at is None or session.last_seen_at <= stale_before:
            self._touch(session_id, now_iso)
        return session

    def _touch(self, session_id: str, seen_at: str) -> None:
        # Losing a last-seen update is acceptable; failing the request is not.
        try:
            self.db.query(UserSession).filter(UserSession.id == session_id).update(
                {UserSession.last_seen_at: seen_at},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("session_touch_failed", session_id=session_id, exc_info=True)

    def refresh(self, token: str) -> bool:
        return self.refresh_id(hash_session_token(token))

    def refresh_id(self, session_id: str) -> bool:
        """Extend expiry by the session window. No-op for inactive or expired sessions."""
        now = clock.now()
        updated = self.db.query(UserSession).filter(
            UserSession.id == session_id,
            UserSession.is_active == 1,
            UserSession.expires_at > clock.to_iso(now),
        ).update(
            {
                UserSession.expires_at: clock.to_iso(now + self.settings.session_ttl),
                UserSession.last_seen_at: clock.to_iso(now),
            },
            synchronize_session=False,
        )
        self.db.commit()
        return updated == 1

    def invalidate(self, token: str) -> None:
        self.invalidate_id(hash_session_token(token))

    def invalidate_id(self, session_id: str) -> None:
        self.db.query(UserSession).filter(UserSession.id == session_id).update(
            {UserSession.is_active: 0},
            synchronize_session=False,
        )
        self.db.commit()

    def invalidate_all(self, user_id: str) -> int:
        """Log out everywhere."""
        count = self.db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active == 1,
        ).update({UserSession.is_active: 0}, synchronize_session=False)
        self.db.commit()
        return count

    def invalidate_all_except(self, user_id: str, keep_session_id: str | None) -> int:
        query = self.db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active == 1,
        )
        if keep_session_id:
            query = query.filter(UserSession.id != keep_session_id)
        count = query.update({UserSession.is_active: 0}, synchronize_session=False)
        self.db.commit()
        return count

    def list_active(self, user_id: str) -> list[UserSession]:
        return self.db.query(UserSession).filter(
            UserSession.user_id == user_id,
            UserSession.is_active == 1,
            UserSession.expires_at > clock.now_iso(),
        ).order_by(UserSession.created_at.desc()).all()

    def get(self, session_id: str) -> UserSession | None:
        return self.db.query(UserSession).filter(UserSession.id == session_id).first()

    def sweep(self) -> int:
        """Delete expired and inactive sessions."""
        deleted = self.db.query(UserSession).filter(
            or_(
                UserSession.is_active == 0,
                UserSession.expires_at <= clock.now_iso(),
            )
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted
