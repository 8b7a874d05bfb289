"""User model."""
import enum
import uuid

from sqlalchemy import Column, Index, Integer, String, func
from sqlalchemy.orm import relationship

from gatehouse.database import Base
from gatehouse.services.clock import now_iso


class Role(str, enum.Enum):
    """Closed set of roles, ordered Admin > Moderator > User."""

    ADMIN = "admin"
    MODERATOR = "moderator"
    USER = "user"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]


_ROLE_RANKS = {Role.USER: 1, Role.MODERATOR: 2, Role.ADMIN: 3}


class TwoFactorMethod(str, enum.Enum):
    """Out-of-band channel used to deliver two-factor codes."""

    EMAIL = "email"
    SMS = "sms"


class User(Base):
    """User account."""

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_locked_until", "locked_until"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lower-cased
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False, default="")
    last_name = Column(String(50), nullable=False, default="")
    role = Column(String(20), nullable=False, default=Role.USER.value)
    phone_number = Column(String(32))

    # Status
    is_active = Column(Integer, nullable=False, default=1)  # SQLite boolean
    email_verified = Column(Integer, nullable=False, default=0)  # SQLite boolean

    # Brute force protection
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(String(26))

    # Two-factor
    two_factor_enabled = Column(Integer, nullable=False, default=0)  # SQLite boolean
    two_factor_method = Column(String(10))

    last_login_at = Column(String(26))
    last_login_ip = Column(String(45))
    created_at = Column(String(26), default=now_iso)
    updated_at = Column(String(26), default=now_iso, onupdate=now_iso)

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    one_time_codes = relationship("OneTimeCode", back_populates="user", cascade="all, delete-orphan")

    @property
    def role_enum(self) -> Role:
        return Role(self.role)


# Usernames are unique regardless of case
Index("ix_users_username_lower", func.lower(User.username), unique=True)
