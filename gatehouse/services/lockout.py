"""Failed-attempt counting and temporary account locks."""
from datetime import timedelta

from sqlalchemy.orm import Session

from gatehouse.logging import get_logger
from gatehouse.models.user import User
from gatehouse.services import clock

logger = get_logger(__name__)


class LockoutGuard:
    """Unlocked -> Locked once failures reach the threshold; locks expire on their own."""

    def __init__(self, db: Session):
        self.db = db

    def record_failure(self, user_id: str) -> int:
        """Increment the counter at the store level and return the new value."""
        self.db.query(User).filter(User.id == user_id).update(
            {User.failed_login_attempts: User.failed_login_attempts + 1},
            synchronize_session=False,
        )
        self.db.commit()
        return self.failed_attempts(user_id)

    def failed_attempts(self, user_id: str) -> int:
        count = self.db.query(User.failed_login_attempts).filter(User.id == user_id).scalar()
        return count or 0

    def should_lock(self, user_id: str, max_attempts: int) -> bool:
        return self.failed_attempts(user_id) >= max_attempts

    def lock(self, user_id: str, duration: timedelta) -> None:
        if duration <= timedelta(0):
            raise ValueError("lock duration must be positive")
        locked_until = clock.to_iso(clock.now() + duration)
        self.db.query(User).filter(User.id == user_id).update(
            {User.locked_until: locked_until},
            synchronize_session=False,
        )
        self.db.commit()
        logger.warning("account_locked", user_id=user_id, locked_until=locked_until)

    def is_locked(self, user_id: str) -> bool:
        locked_until = self.db.query(User.locked_until).filter(User.id == user_id).scalar()
        return bool(locked_until) and locked_until > clock.now_iso()

    def reset_failures(self, user_id: str) -> None:
        """Zero the counter without touching an active lock."""
        self.db.query(User).filter(User.id == user_id).update(
            {User.failed_login_attempts: 0},
            synchronize_session=False,
        )
        self.db.commit()

    def unlock(self, user_id: str) -> None:
        """Clear both the lock and the counter."""
        self.db.query(User).filter(User.id == user_id).update(
            {User.locked_until: None, User.failed_login_attempts: 0},
            synchronize_session=False,
        )
        self.db.commit()
