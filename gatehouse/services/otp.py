"""One-time numeric codes for two-factor, reset, and verification flows."""
from datetime import timedelta
import hashlib
import secrets

from sqlalchemy import or_
from sqlalchemy.orm import Session

from gatehouse.config import Settings, get_settings
from gatehouse.logging import get_logger
from gatehouse.models.auth import OneTimeCode, OTPPurpose
from gatehouse.services import clock
from gatehouse.services.lockout import LockoutGuard

logger = get_logger(__name__)


def generate_code(length: int) -> str:
    """Uniformly random decimal string of exactly ``length`` digits."""
    if length < 1:
        raise ValueError("length must be positive")
    # randbelow rejection-samples, so every value in [0, 10**length) is equally likely
    return f"{secrets.randbelow(10 ** length):0{length}d}"


def hash_code(code: str) -> str:
    """Hash a code value before persisting."""
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


class OTPService:
    """Issues and consumes codes; at most one outstanding code per user and purpose."""

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.lockout = LockoutGuard(db)

    def issue(
        self,
        user_id: str,
        purpose: OTPPurpose,
        ttl: timedelta | None = None,
    ) -> tuple[OneTimeCode, str]:
        """Replace any outstanding code for (user, purpose) with a fresh one."""
        code = generate_code(self.settings.otp_length)
        now = clock.now()

        self.db.query(OneTimeCode).filter(
            OneTimeCode.user_id == user_id,
            OneTimeCode.purpose == purpose.value,
            OneTimeCode.used_at.is_(None),
        ).delete(synchronize_session=False)

        record = OneTimeCode(
            user_id=user_id,
            purpose=purpose.value,
            code_hash=hash_code(code),
            expires_at=clock.to_iso(now + (ttl if ttl is not None else self.settings.otp_ttl)),
            created_at=clock.to_iso(now),
        )
        self.db.add(record)
        self.db.commit()
        logger.info("otp_issued", user_id=user_id, purpose=purpose.value)
        return record, code

    def verify(self, user_id: str, purpose: OTPPurpose, submitted_code: str) -> bool:
        """Consume the matching code exactly once.

        Fails closed: any miss increments the user's failed-attempt counter.
        """
        consumed = 0
        if submitted_code and submitted_code.isdigit() and len(submitted_code) == self.settings.otp_length:
            now_iso = clock.now_iso()
            consumed = self.db.query(OneTimeCode).filter(
                OneTimeCode.user_id == user_id,
                OneTimeCode.purpose == purpose.value,
                OneTimeCode.code_hash == hash_code(submitted_code),
                OneTimeCode.used_at.is_(None),
                OneTimeCode.expires_at > now_iso,
            ).update({OneTimeCode.used_at: now_iso}, synchronize_session=False)
            self.db.commit()

        if consumed == 1:
            self.lockout.reset_failures(user_id)
            logger.info("otp_verified", user_id=user_id, purpose=purpose.value)
            return True

        attempts = self.lockout.record_failure(user_id)
        logger.warning("otp_rejected", user_id=user_id, purpose=purpose.value, failed_attempts=attempts)
        return False

    def sweep(self) -> int:
        """Delete used and expired codes."""
        deleted = self.db.query(OneTimeCode).filter(
            or_(
                OneTimeCode.used_at.is_not(None),
                OneTimeCode.expires_at <= clock.now_iso(),
            )
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted
