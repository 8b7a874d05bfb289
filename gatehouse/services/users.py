"""Account administration: profile edits, roles, activation and unlocks."""
from sqlalchemy.orm import Session

from gatehouse.models.user import Role, User
from gatehouse.services.audit import AuditAction, AuditLogger
from gatehouse.services.errors import NotFoundError, ValidationError
from gatehouse.services.lockout import LockoutGuard
from gatehouse.services.sessions import SessionStore


class UserService:
    def __init__(self, db: Session, audit: AuditLogger | None = None):
        self.db = db
        self.sessions = SessionStore(db)
        self.lockout = LockoutGuard(db)
        self.audit = audit or AuditLogger(db)

    def list_users(self, skip: int = 0, limit: int = 50) -> list[User]:
        return self.db.query(User).order_by(User.created_at).offset(skip).limit(limit).all()

    def get_user(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def update_profile(self, user: User, actor: User, **changes) -> User:
        """Apply non-security profile fields; ``None`` values are left alone."""
        applied = {}
        for field in ("first_name", "last_name", "phone_number"):
            value = changes.get(field)
            if value is not None:
                setattr(user, field, value)
                applied[field] = value
        self.db.commit()
        self.db.refresh(user)
        self.audit.record(actor.id, AuditAction.PROFILE_UPDATE, user_id=user.id, fields=sorted(applied))
        return user

    def change_role(self, actor: User, user_id: str, role: Role, ip_address: str | None = None) -> User:
        """Assign a role and revoke the target's sessions so no token keeps the old one."""
        user = self.get_user(user_id)
        if user.id == actor.id:
            raise ValidationError("You cannot change your own role")

        previous = user.role
        user.role = Role(role).value
        self.db.commit()
        revoked = self.sessions.invalidate_all(user.id)
        self.audit.record(
            actor.id,
            AuditAction.ROLE_CHANGE,
            ip_address,
            user_id=user.id,
            old_role=previous,
            new_role=user.role,
            revoked=revoked,
        )
        self.db.refresh(user)
        return user

    def set_active(self, actor: User, user_id: str, is_active: bool, ip_address: str | None = None) -> User:
        user = self.get_user(user_id)
        if user.id == actor.id and not is_active:
            raise ValidationError("You cannot deactivate your own account")

        user.is_active = 1 if is_active else 0
        self.db.commit()
        revoked = 0
        if not is_active:
            revoked = self.sessions.invalidate_all(user.id)
        self.audit.record(
            actor.id,
            AuditAction.STATUS_CHANGE,
            ip_address,
            user_id=user.id,
            is_active=bool(is_active),
            revoked=revoked,
        )
        self.db.refresh(user)
        return user

    def unlock(self, actor: User, user_id: str, ip_address: str | None = None) -> User:
        """Admin override: clear the lock and the failure counter."""
        user = self.get_user(user_id)
        self.lockout.unlock(user.id)
        self.audit.record(actor.id, AuditAction.ACCOUNT_UNLOCKED, ip_address, user_id=user.id)
        self.db.refresh(user)
        return user
