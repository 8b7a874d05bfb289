"""Authentication/session models."""
import enum
import uuid

from sqlalchemy import Column, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from gatehouse.database import Base
from gatehouse.services.clock import now_iso


class OTPPurpose(str, enum.Enum):
    """What a one-time code proves possession for."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR = "two_factor"


class UserSession(Base):
    """Server-side record of a login on one device."""

    __tablename__ = "user_sessions"
    __table_args__ = (
        Index("ix_user_sessions_user_active", "user_id", "is_active"),
        Index("ix_user_sessions_expires_at", "expires_at"),
    )

    # SHA-256 of the session token; the token itself is only held by the client
    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(45))
    user_agent = Column(String(255))
    is_active = Column(Integer, nullable=False, default=1)  # SQLite boolean
    created_at = Column(String(26), default=now_iso)
    last_seen_at = Column(String(26), default=now_iso)
    expires_at = Column(String(26), nullable=False)

    user = relationship("User", back_populates="sessions")


class OneTimeCode(Base):
    """Single-use, time-boxed numeric code bound to one user and purpose."""

    __tablename__ = "one_time_codes"
    __table_args__ = (
        Index("ix_one_time_codes_lookup", "user_id", "purpose", "used_at"),
        Index("ix_one_time_codes_expires_at", "expires_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(String(32), nullable=False)
    code_hash = Column(String(64), nullable=False)
    expires_at = Column(String(26), nullable=False)
    used_at = Column(String(26))
    created_at = Column(String(26), default=now_iso)

    user = relationship("User", back_populates="one_time_codes")
