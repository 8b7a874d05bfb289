"""Authentication flows: registration, login, two-factor, refresh, logout and
credential recovery.

Every externally visible failure during sign-in collapses to one generic
error per flow. The precise cause travels in ``reason`` and the audit log.
"""
from dataclasses import dataclass
from functools import lru_cache
import secrets

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gatehouse.config import Settings, get_settings
from gatehouse.logging import get_logger
from gatehouse.models.auth import OTPPurpose
from gatehouse.models.user import Role, TwoFactorMethod, User
from gatehouse.services import clock, rbac
from gatehouse.services.audit import AuditAction, AuditLogger
from gatehouse.services.errors import (
    AccountLockedError,
    AuthenticationError,
    DuplicateIdentityError,
    InvalidCredentialsError,
    NotFoundError,
    OTPInvalidOrExpiredError,
    ValidationError,
)
from gatehouse.services.lockout import LockoutGuard
from gatehouse.services.notifications import OTPDispatcher, default_dispatcher
from gatehouse.services.otp import OTPService
from gatehouse.services.passwords import hash_password, verify_password
from gatehouse.services.sessions import SessionStore, hash_session_token
from gatehouse.services.tokens import TokenCodec

logger = get_logger(__name__)


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return hash_password(secrets.token_urlsafe(16), rounds=rounds)


@dataclass
class LoginResult:
    """Outcome of a credential check.

    When ``two_factor_required`` is set no token has been issued yet; the
    caller must complete ``verify_two_factor``.
    """

    user: User
    access_token: str | None = None
    session_token: str | None = None
    session_id: str | None = None
    two_factor_required: bool = False
    expires_in: int = 0


class AuthService:
    def __init__(
        self,
        db: Session,
        settings: Settings | None = None,
        dispatcher: OTPDispatcher | None = None,
        audit: AuditLogger | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.codec = TokenCodec(self.settings)
        self.sessions = SessionStore(db, self.settings)
        self.lockout = LockoutGuard(db)
        self.otp = OTPService(db, self.settings)
        self.dispatcher = dispatcher or default_dispatcher(self.settings)
        self.audit = audit or AuditLogger(db)

    # Lookups

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    # Registration and login

    def register(
        self,
        email: str,
        username: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        role: Role | None = None,
        phone_number: str | None = None,
        actor: User | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Create an account and sign it in.

        A role other than User is honoured only when ``actor`` is an admin.
        """
        email = email.strip().lower()
        username = username.strip()

        if self.get_user_by_email(email):
            raise DuplicateIdentityError("Email already registered")
        if self.db.query(User).filter(func.lower(User.username) == username.lower()).first():
            raise DuplicateIdentityError("Username already registered")

        assigned_role = Role.USER
        if role is not None and Role(role) is not Role.USER:
            if actor is not None and actor.role_enum is Role.ADMIN:
                assigned_role = Role(role)
            else:
                logger.warning("register_role_ignored", requested_role=Role(role).value)

        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password, rounds=self.settings.bcrypt_rounds),
            first_name=first_name,
            last_name=last_name,
            role=assigned_role.value,
            phone_number=phone_number,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration
            self.db.rollback()
            raise DuplicateIdentityError(reason="unique constraint") from exc
        self.db.refresh(user)

        self.audit.record(
            actor.id if actor else user.id,
            AuditAction.REGISTER,
            ip_address,
            user_id=user.id,
            role=assigned_role.value,
        )
        return self._sign_in(user, ip_address, user_agent)

    def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        user = self.get_user_by_email(email)
        if user is None:
            # Keep response timing close to the known-user path
            verify_password(password, _dummy_hash(self.settings.bcrypt_rounds))
            self.audit.record(None, AuditAction.LOGIN_FAILED, ip_address, reason="unknown email")
            raise InvalidCredentialsError(reason="unknown email")

        if not user.is_active:
            self.audit.record(user.id, AuditAction.LOGIN_FAILED, ip_address, reason="inactive")
            raise InvalidCredentialsError(reason="inactive")

        if self.lockout.is_locked(user.id):
            self.audit.record(user.id, AuditAction.LOGIN_FAILED, ip_address, reason="locked")
            raise AccountLockedError(reason="locked")

        if not verify_password(password, user.password_hash):
            self._record_failure(user.id, ip_address, "wrong password")
            raise InvalidCredentialsError(reason="wrong password")

        if user.two_factor_enabled:
            method = TwoFactorMethod(user.two_factor_method or TwoFactorMethod.EMAIL.value)
            if not self.dispatcher.supports(method):
                logger.error("two_factor_channel_unavailable", user_id=user.id, method=method.value)
                self.audit.record(user.id, AuditAction.LOGIN_FAILED, ip_address, reason="no delivery channel")
                raise InvalidCredentialsError(reason=f"{method.value} delivery is not available")

            # The failure counter stays as is until the second factor passes
            _, code = self.otp.issue(user.id, OTPPurpose.TWO_FACTOR)
            self.dispatcher.dispatch(user, method, code, OTPPurpose.TWO_FACTOR)
            self.audit.record(user.id, AuditAction.TWO_FACTOR_CHALLENGE, ip_address, method=method.value)
            return LoginResult(user=user, two_factor_required=True)

        self.lockout.unlock(user.id)
        self._record_login(user, ip_address)
        result = self._sign_in(user, ip_address, user_agent)
        self.audit.record(user.id, AuditAction.LOGIN, ip_address, session_id=result.session_id)
        return result

    def verify_two_factor(
        self,
        user_id: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """Complete a pending login by consuming the two-factor code."""
        user = self.get_user(user_id)
        if user is None or not user.is_active or not user.two_factor_enabled:
            raise OTPInvalidOrExpiredError(reason="no pending challenge")
        if self.lockout.is_locked(user.id):
            raise OTPInvalidOrExpiredError(reason="locked")

        self._consume_code(user, OTPPurpose.TWO_FACTOR, code, ip_address)

        self.lockout.unlock(user.id)
        self._record_login(user, ip_address)
        result = self._sign_in(user, ip_address, user_agent)
        self.audit.record(user.id, AuditAction.LOGIN, ip_address, session_id=result.session_id, two_factor=True)
        return result

    # Tokens and sessions

    def refresh_token(self, token: str) -> str:
        """Issue a fresh token from a still-valid one, extending its session."""
        claims = self.codec.verify(token)

        user = self.get_user(claims.subject)
        if user is None or not user.is_active:
            raise AuthenticationError(reason="subject missing or inactive")

        if claims.session_id and self.settings.session_tracking_enabled:
            self.sessions.validate_id(claims.session_id)
            self.sessions.refresh_id(claims.session_id)

        return self.codec.refresh(token)

    def logout(
        self,
        session_token: str | None = None,
        session_id: str | None = None,
        actor_id: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        if session_token:
            session_id = hash_session_token(session_token)
        if not session_id:
            return
        self.sessions.invalidate_id(session_id)
        self.audit.record(actor_id, AuditAction.LOGOUT, ip_address, session_id=session_id)

    def revoke_session(self, session_id: str, actor: User, ip_address: str | None = None) -> None:
        """Revoke one session on behalf of its owner or an admin."""
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        rbac.ensure_owner_or_admin(actor.role, actor.id, session.user_id)

        self.sessions.invalidate_id(session.id)
        self.audit.record(
            actor.id,
            AuditAction.SESSION_REVOKED,
            ip_address,
            session_id=session.id,
            user_id=session.user_id,
        )

    def logout_all(
        self,
        user_id: str,
        keep_session_id: str | None = None,
        ip_address: str | None = None,
    ) -> int:
        revoked = self.sessions.invalidate_all_except(user_id, keep_session_id)
        self.audit.record(user_id, AuditAction.LOGOUT_ALL, ip_address, revoked=revoked)
        return revoked

    # Password management

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        keep_session_id: str | None = None,
        ip_address: str | None = None,
    ) -> int:
        """Replace the password and sign out every other session."""
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError(reason="wrong current password")
        if current_password == new_password:
            raise ValidationError("New password must be different from the current password")

        user.password_hash = hash_password(new_password, rounds=self.settings.bcrypt_rounds)
        self.db.commit()

        revoked = self.sessions.invalidate_all_except(user.id, keep_session_id)
        self.audit.record(user.id, AuditAction.PASSWORD_CHANGE, ip_address, revoked=revoked)
        return revoked

    def request_password_reset(self, email: str, ip_address: str | None = None) -> None:
        """Send a reset code. Silent for unknown, inactive and locked accounts."""
        user = self.get_user_by_email(email)
        if user is None or not user.is_active or self.lockout.is_locked(user.id):
            logger.info("password_reset_skipped", found=user is not None)
            return

        _, code = self.otp.issue(user.id, OTPPurpose.PASSWORD_RESET)
        self.dispatcher.dispatch(user, TwoFactorMethod.EMAIL, code, OTPPurpose.PASSWORD_RESET)
        self.audit.record(user.id, AuditAction.PASSWORD_RESET_REQUESTED, ip_address)

    def reset_password(
        self,
        email: str,
        code: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> None:
        user = self.get_user_by_email(email)
        if user is None or not user.is_active:
            raise OTPInvalidOrExpiredError(reason="unknown or inactive")
        if self.lockout.is_locked(user.id):
            raise OTPInvalidOrExpiredError(reason="locked")

        self._consume_code(user, OTPPurpose.PASSWORD_RESET, code, ip_address)

        user.password_hash = hash_password(new_password, rounds=self.settings.bcrypt_rounds)
        self.db.commit()
        self.lockout.unlock(user.id)
        revoked = self.sessions.invalidate_all(user.id)
        self.audit.record(user.id, AuditAction.PASSWORD_RESET, ip_address, revoked=revoked)

    # Email verification

    def request_email_verification(self, user: User) -> None:
        if user.email_verified:
            raise ValidationError("Email already verified")
        _, code = self.otp.issue(user.id, OTPPurpose.EMAIL_VERIFICATION)
        self.dispatcher.dispatch(user, TwoFactorMethod.EMAIL, code, OTPPurpose.EMAIL_VERIFICATION)

    def verify_email(self, user: User, code: str, ip_address: str | None = None) -> None:
        self._consume_code(user, OTPPurpose.EMAIL_VERIFICATION, code, ip_address)
        user.email_verified = 1
        self.db.commit()
        self.audit.record(user.id, AuditAction.EMAIL_VERIFIED, ip_address)

    # Two-factor management

    def enable_two_factor(
        self,
        user: User,
        method: TwoFactorMethod,
        phone_number: str | None = None,
        ip_address: str | None = None,
    ) -> None:
        method = TwoFactorMethod(method)
        if not self.dispatcher.supports(method):
            raise ValidationError(f"{method.value} delivery is not available")
        if method is TwoFactorMethod.SMS:
            phone_number = phone_number or user.phone_number
            if not phone_number:
                raise ValidationError("A phone number is required for SMS codes")
            user.phone_number = phone_number

        user.two_factor_enabled = 1
        user.two_factor_method = method.value
        self.db.commit()
        self.audit.record(user.id, AuditAction.TWO_FACTOR_ENABLED, ip_address, method=method.value)

    def disable_two_factor(self, user: User, password: str, ip_address: str | None = None) -> None:
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError(reason="wrong password")

        user.two_factor_enabled = 0
        user.two_factor_method = None
        self.db.commit()
        self.audit.record(user.id, AuditAction.TWO_FACTOR_DISABLED, ip_address)

    # Helpers

    def _sign_in(self, user: User, ip_address: str | None, user_agent: str | None) -> LoginResult:
        session_token = session_id = None
        if self.settings.session_tracking_enabled:
            session, session_token = self.sessions.create(user.id, ip_address, user_agent)
            session_id = session.id

        return LoginResult(
            user=user,
            access_token=self.codec.issue(user, session_id=session_id),
            session_token=session_token,
            session_id=session_id,
            expires_in=int(self.settings.access_token_ttl.total_seconds()),
        )

    def _record_login(self, user: User, ip_address: str | None) -> None:
        user.last_login_at = clock.now_iso()
        user.last_login_ip = ip_address
        self.db.commit()

    def _record_failure(self, user_id: str, ip_address: str | None, reason: str) -> None:
        attempts = self.lockout.record_failure(user_id)
        self._lock_at_threshold(user_id, attempts, ip_address)
        self.audit.record(user_id, AuditAction.LOGIN_FAILED, ip_address, reason=reason, failed_attempts=attempts)

    def _lock_at_threshold(self, user_id: str, attempts: int, ip_address: str | None) -> None:
        if attempts >= self.settings.lockout_threshold:
            self.lockout.lock(user_id, self.settings.lockout_duration)
            self.audit.record(user_id, AuditAction.ACCOUNT_LOCKED, ip_address, failed_attempts=attempts)

    def _consume_code(self, user: User, purpose: OTPPurpose, code: str, ip_address: str | None) -> None:
        """Consume ``code`` or raise; the verifier has already counted a miss."""
        if self.otp.verify(user.id, purpose, code):
            return
        attempts = self.lockout.failed_attempts(user.id)
        self._lock_at_threshold(user.id, attempts, ip_address)
        self.audit.record(user.id, AuditAction.CODE_REJECTED, ip_address, purpose=purpose.value)
        raise OTPInvalidOrExpiredError(reason=f"{purpose.value} code rejected")
