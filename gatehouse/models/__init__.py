"""SQLAlchemy models package."""
from gatehouse.models.user import Role, TwoFactorMethod, User
from gatehouse.models.auth import OneTimeCode, OTPPurpose, UserSession
from gatehouse.models.audit import AuditLog

__all__ = [
    "Role",
    "TwoFactorMethod",
    "User",
    "OneTimeCode",
    "OTPPurpose",
    "UserSession",
    "AuditLog",
]
