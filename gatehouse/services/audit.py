"""Audit trail for security-relevant actions."""
import enum
import json

from sqlalchemy.orm import Session

from gatehouse.logging import get_logger
from gatehouse.models.audit import AuditLog

logger = get_logger("gatehouse.audit")


class AuditAction(str, enum.Enum):
    REGISTER = "register"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_UNLOCKED = "account_unlocked"
    TWO_FACTOR_CHALLENGE = "two_factor_challenge"
    CODE_REJECTED = "code_rejected"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout_all"
    SESSION_REVOKED = "session_revoked"
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFIED = "email_verified"
    PROFILE_UPDATE = "profile_update"
    ROLE_CHANGE = "role_change"
    STATUS_CHANGE = "status_change"


class AuditLogger:
    """Writes one row per action and mirrors it to the structured log."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        actor_id: str | None,
        action: AuditAction,
        ip_address: str | None = None,
        **details,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action.value,
            ip_address=ip_address,
            details=json.dumps(details, default=str, sort_keys=True),
        )
        self.db.add(entry)
        self.db.commit()
        logger.info("audit", action=action.value, actor_id=actor_id, ip_address=ip_address, **details)
        return entry
