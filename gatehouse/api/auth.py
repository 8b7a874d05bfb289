"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials

from gatehouse.api.deps import (
    bearer_scheme,
    get_auth_service,
    get_client_ip,
    get_current_claims,
    get_current_user,
    get_optional_user,
    rate_limit,
)
from gatehouse.config import get_settings
from gatehouse.models.user import User
from gatehouse.schemas.auth import (
    CodeSubmit,
    LoginResponse,
    MessageResponse,
    PasswordChange,
    PasswordConfirm,
    PasswordForgot,
    PasswordReset,
    SessionResponse,
    Token,
    TwoFactorEnable,
    TwoFactorVerify,
    UserLogin,
    UserRegister,
)
from gatehouse.schemas.user import UserResponse
from gatehouse.services.auth import AuthService, LoginResult
from gatehouse.services.tokens import TokenClaims

router = APIRouter(prefix="/auth", tags=["auth"])
settings = get_settings()


def set_session_cookie(response: Response, session_token: str) -> None:
    """Issue secure HttpOnly session cookie."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        path=settings.session_cookie_path,
        max_age=int(settings.session_ttl.total_seconds()),
    )


def clear_session_cookie(response: Response) -> None:
    """Clear session cookie."""
    response.delete_cookie(
        key=settings.session_cookie_name,
        path=settings.session_cookie_path,
        secure=settings.session_cookie_secure,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def _login_response(response: Response, result: LoginResult) -> LoginResponse:
    if result.session_token:
        set_session_cookie(response, result.session_token)
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in or None,
        two_factor_required=result.two_factor_required,
        user_id=result.user.id,
    )


@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(rate_limit)])
def register(
    user_data: UserRegister,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    actor: User | None = Depends(get_optional_user),
):
    """Register a new user and sign them in."""
    result = auth.register(
        email=user_data.email,
        username=user_data.username,
        password=user_data.password,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role=user_data.role,
        phone_number=user_data.phone_number,
        actor=actor,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _login_response(response, result)


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(rate_limit)])
def login(
    user_data: UserLogin,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Check credentials; returns a token or a pending two-factor challenge."""
    result = auth.login(
        user_data.email,
        user_data.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _login_response(response, result)


@router.post("/2fa/verify", response_model=LoginResponse, dependencies=[Depends(rate_limit)])
def verify_two_factor(
    data: TwoFactorVerify,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    result = auth.verify_two_factor(
        data.user_id,
        data.code,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _login_response(response, result)


@router.post("/2fa/enable", response_model=UserResponse)
def enable_two_factor(
    data: TwoFactorEnable,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    current_user: User = Depends(get_current_user),
):
    auth.enable_two_factor(current_user, data.method, data.phone_number, ip_address=get_client_ip(request))
    return current_user


@router.post("/2fa/disable", response_model=UserResponse)
def disable_two_factor(
    data: PasswordConfirm,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    current_user: User = Depends(get_current_user),
):
    auth.disable_two_factor(current_user, data.password, ip_address=get_client_ip(request))
    return current_user


@router.post("/refresh", response_model=Token)
def refresh_token(
    auth: AuthService = Depends(get_auth_service),
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    claims: TokenClaims = Depends(get_current_claims),
):
    """Exchange a still-valid bearer token for a fresh one."""
    return Token(
        access_token=auth.refresh_token(credentials.credentials),
        expires_in=int(settings.access_token_ttl.total_seconds()),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    claims: TokenClaims = Depends(get_current_claims),
):
    """End the current session, identified by cookie or by the token's session."""
    auth.logout(
        session_token=request.cookies.get(settings.session_cookie_name),
        session_id=claims.session_id,
        actor_id=claims.subject,
        ip_address=get_client_ip(request),
    )
    clear_session_cookie(response)
    return MessageResponse(message="Successfully logged out")


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    claims: TokenClaims = Depends(get_current_claims),
):
    """Revoke every other session of the caller."""
    revoked = auth.logout_all(claims.subject, keep_session_id=claims.session_id, ip_address=get_client_ip(request))
    return MessageResponse(message=f"Revoked {revoked} session(s)")


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info."""
    return current_user


@router.get("/sessions", response_model=list[SessionResponse])
def list_sessions(
    auth: AuthService = Depends(get_auth_service),
    claims: TokenClaims = Depends(get_current_claims),
):
    sessions = auth.sessions.list_active(claims.subject)
    return [
        SessionResponse.model_validate(session).model_copy(update={"current": session.id == claims.session_id})
        for session in sessions
    ]


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    current_user: User = Depends(get_current_user),
):
    auth.revoke_session(session_id, current_user, ip_address=get_client_ip(request))
    return MessageResponse(message="Session revoked")


@router.post("/password/change", response_model=MessageResponse)
def change_password(
    data: PasswordChange,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    claims: TokenClaims = Depends(get_current_claims),
    current_user: User = Depends(get_current_user),
):
    auth.change_password(
        current_user,
        data.current_password,
        data.new_password,
        keep_session_id=claims.session_id,
        ip_address=get_client_ip(request),
    )
    return MessageResponse(message="Password changed")


@router.post("/password/forgot", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED,
             dependencies=[Depends(rate_limit)])
def forgot_password(
    data: PasswordForgot,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
):
    """Always answers the same way so callers cannot probe for accounts."""
    auth.request_password_reset(data.email, ip_address=get_client_ip(request))
    return MessageResponse(message="If the account exists, a reset code has been sent")


@router.post("/password/reset", response_model=MessageResponse, dependencies=[Depends(rate_limit)])
def reset_password(
    data: PasswordReset,
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    auth.reset_password(data.email, data.code, data.new_password, ip_address=get_client_ip(request))
    clear_session_cookie(response)
    return MessageResponse(message="Password has been reset")


@router.post("/email/verification", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
def request_email_verification(
    auth: AuthService = Depends(get_auth_service),
    current_user: User = Depends(get_current_user),
):
    auth.request_email_verification(current_user)
    return MessageResponse(message="Verification code sent")


@router.post("/email/verify", response_model=UserResponse)
def verify_email(
    data: CodeSubmit,
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    current_user: User = Depends(get_current_user),
):
    auth.verify_email(current_user, data.code, ip_address=get_client_ip(request))
    return current_user
