"""Shared route dependencies: database, current identity, roles, rate limits."""
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from gatehouse.config import Settings, get_settings
from gatehouse.database import get_db
from gatehouse.models.user import Role, User
from gatehouse.services import rbac
from gatehouse.services.auth import AuthService
from gatehouse.services.errors import AuthenticationError
from gatehouse.services.notifications import OTPDispatcher, default_dispatcher
from gatehouse.services.sessions import SessionStore
from gatehouse.services.tokens import TokenClaims, TokenCodec
from gatehouse.services.users import UserService

bearer_scheme = HTTPBearer(auto_error=False)

__all__ = [
    "get_db",
    "get_settings",
    "get_client_ip",
    "get_otp_dispatcher",
    "get_auth_service",
    "get_user_service",
    "get_current_claims",
    "get_current_user",
    "get_optional_user",
    "require_role",
    "rate_limit",
]


def get_client_ip(request: Request, settings: Settings | None = None) -> str | None:
    """Client IP as seen by the socket, or by the nearest trusted proxy.

    X-Forwarded-For is read only when the direct peer is listed in
    ``trusted_proxies``; the right-most hop that is not itself a trusted
    proxy is the client.
    """
    settings = settings or get_settings()
    peer = request.client.host if request.client else None
    trusted = set(settings.trusted_proxies)
    xff = request.headers.get("x-forwarded-for")
    if not xff or peer not in trusted:
        return peer

    hops = [hop.strip() for hop in xff.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return hops[0] if hops else peer


def get_otp_dispatcher(settings: Settings = Depends(get_settings)) -> OTPDispatcher:
    return default_dispatcher(settings)


def get_auth_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    dispatcher: OTPDispatcher = Depends(get_otp_dispatcher),
) -> AuthService:
    return AuthService(db, settings, dispatcher=dispatcher)


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def _verify_credentials(
    credentials: HTTPAuthorizationCredentials,
    db: Session,
    settings: Settings,
) -> TokenClaims:
    claims = TokenCodec(settings).verify(credentials.credentials)
    if claims.session_id and settings.session_tracking_enabled and settings.enforce_session_liveness:
        SessionStore(db, settings).validate_id(claims.session_id)
    return claims


def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TokenClaims:
    """Verify the bearer token and, when enforced, the session it names."""
    if credentials is None:
        raise AuthenticationError(reason="missing bearer token")
    return _verify_credentials(credentials, db, settings)


def get_current_user(
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
) -> User:
    """Load the caller. Authorization uses the stored role, not the token's copy."""
    user = db.get(User, claims.subject)
    if user is None or not user.is_active:
        raise AuthenticationError(reason="subject missing or inactive")
    return user


def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> User | None:
    """Anonymous callers get ``None``; a presented but invalid token still fails."""
    if credentials is None:
        return None
    claims = _verify_credentials(credentials, db, settings)
    return get_current_user(claims, db)


def require_role(required: Role):
    """Dependency factory gating a route on a minimum role."""

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        rbac.ensure_role(current_user.role, required)
        return current_user

    return dependency


def rate_limit(request: Request, settings: Settings = Depends(get_settings)) -> None:
    """Spend one token from the caller's bucket for this path."""
    if not settings.rate_limit_enabled:
        return
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return
    limiter.check(f"{get_client_ip(request, settings)}:{request.url.path}")
