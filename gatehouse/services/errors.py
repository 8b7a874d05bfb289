"""Service-layer exceptions mapped to HTTP responses.

Each class carries an HTTP ``status_code``, a stable ``error_code`` and a
public ``message``. Authentication failures keep a private ``reason`` for
logging; the reason is never sent to the client.
"""
from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions."""

    status_code: int = 400
    error_code: str = "validation_error"
    default_message: str = "Bad request"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        detail: Optional[dict] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.reason = reason
        self.detail = detail or {}


class ValidationError(ServiceError):
    """Request validation failed (400)."""
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    """Authentication failed or missing (401)."""
    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized"


class InvalidCredentialsError(AuthenticationError):
    """Wrong email/password, unknown email, or inactive account."""
    default_message = "Invalid credentials"


class AccountLockedError(InvalidCredentialsError):
    """Identity is inside its lockout window. Presented like bad credentials."""


class TokenError(AuthenticationError):
    """Bearer token rejected."""


class TokenExpiredError(TokenError):
    pass


class TokenMalformedError(TokenError):
    pass


class TokenSignatureInvalidError(TokenError):
    pass


class InvalidSessionError(AuthenticationError):
    """Unknown, revoked, and expired sessions are indistinguishable."""
    default_message = "Invalid session"


class OTPInvalidOrExpiredError(AuthenticationError):
    """Wrong, used, or expired one-time code."""
    default_message = "Invalid or expired code"


class ForbiddenError(ServiceError):
    """Access denied (403)."""
    status_code = 403
    error_code = "forbidden"
    default_message = "Forbidden"


class InsufficientRoleError(ForbiddenError):
    default_message = "Insufficient permissions"


class NotResourceOwnerError(ForbiddenError):
    pass


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class DuplicateIdentityError(ServiceError):
    """Registration collided with an existing email or username (409)."""
    status_code = 409
    error_code = "conflict"
    default_message = "Account already exists"


class RateLimitedError(ServiceError):
    status_code = 429
    error_code = "rate_limited"
    default_message = "Too many requests"


class ServerError(ServiceError):
    """Internal failure; details stay in the logs (500)."""
    status_code = 500
    error_code = "server_error"
    default_message = "Internal server error"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "AccountLockedError",
    "TokenError",
    "TokenExpiredError",
    "TokenMalformedError",
    "TokenSignatureInvalidError",
    "InvalidSessionError",
    "OTPInvalidOrExpiredError",
    "ForbiddenError",
    "InsufficientRoleError",
    "NotResourceOwnerError",
    "NotFoundError",
    "DuplicateIdentityError",
    "RateLimitedError",
    "ServerError",
]
