"""Bearer token issuance and verification."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from jose import jwt
from jose.exceptions import JWTError

from gatehouse.config import Settings, get_settings
from gatehouse.models.user import Role
from gatehouse.services import clock
from gatehouse.services.errors import (
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureInvalidError,
)

_REQUIRED_CLAIMS = ("sub", "email", "username", "role", "iat", "nbf", "exp", "iss")

# Time window, issuer and claim shapes are checked against our own clock and
# settings after the signature has been verified.
_SIGNATURE_ONLY = {
    "verify_aud": False,
    "verify_iat": False,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iss": False,
    "verify_sub": False,
    "verify_jti": False,
    "verify_at_hash": False,
}


class TokenSubject(Protocol):
    id: str
    email: str
    username: str
    role: str


@dataclass(frozen=True)
class TokenClaims:
    """Identity claims carried by a verified token."""

    subject: str
    email: str
    username: str
    role: Role
    issued_at: datetime
    not_before: datetime
    expires_at: datetime
    issuer: str
    session_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "sub": self.subject,
            "email": self.email,
            "username": self.username,
            "role": self.role.value,
            "iat": clock.to_timestamp(self.issued_at),
            "nbf": clock.to_timestamp(self.not_before),
            "exp": clock.to_timestamp(self.expires_at),
            "iss": self.issuer,
        }
        if self.session_id:
            payload["sid"] = self.session_id
        return payload


class TokenCodec:
    """Signs and verifies HMAC JWTs with the process-wide secret."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def issue(
        self,
        identity: TokenSubject,
        ttl: timedelta | None = None,
        session_id: str | None = None,
    ) -> str:
        """Create a signed token for ``identity`` valid for ``ttl``."""
        return self._encode(
            subject=identity.id,
            email=identity.email,
            username=identity.username,
            role=Role(identity.role),
            ttl=ttl,
            session_id=session_id,
        )

    def verify(self, token: str) -> TokenClaims:
        """Check algorithm, signature, issuer and time window; return the claims."""
        # Structure first, so that anything failing below is a signature problem
        try:
            header = jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise TokenMalformedError(reason=str(exc)) from exc

        if header.get("alg") != self.settings.algorithm:
            raise TokenSignatureInvalidError(reason=f"unexpected alg {header.get('alg')!r}")

        try:
            payload = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                options=_SIGNATURE_ONLY,
            )
        except JWTError as exc:
            raise TokenSignatureInvalidError(reason=str(exc)) from exc

        claims = self._claims_from_payload(payload)

        now = clock.now()
        if now >= claims.expires_at:
            raise TokenExpiredError(reason="expired")
        if claims.not_before > now + timedelta(seconds=self.settings.token_leeway_seconds):
            raise TokenMalformedError(reason="not yet valid")
        return claims

    def refresh(self, token: str) -> str:
        """Issue a new token for the same subject; the old one must still verify."""
        claims = self.verify(token)
        return self._encode(
            subject=claims.subject,
            email=claims.email,
            username=claims.username,
            role=claims.role,
            ttl=None,
            session_id=claims.session_id,
        )

    def _encode(
        self,
        *,
        subject: str,
        email: str,
        username: str,
        role: Role,
        ttl: timedelta | None,
        session_id: str | None,
    ) -> str:
        issued_at = clock.now()
        claims = TokenClaims(
            subject=subject,
            email=email,
            username=username,
            role=role,
            issued_at=issued_at,
            not_before=issued_at,
            expires_at=issued_at + (ttl if ttl is not None else self.settings.access_token_ttl),
            issuer=self.settings.token_issuer,
            session_id=session_id,
        )
        return jwt.encode(claims.to_payload(), self.settings.secret_key, algorithm=self.settings.algorithm)

    def _claims_from_payload(self, payload: dict[str, Any]) -> TokenClaims:
        missing = [name for name in _REQUIRED_CLAIMS if name not in payload]
        if missing:
            raise TokenMalformedError(reason=f"missing claims {missing}")
        if payload["iss"] != self.settings.token_issuer:
            raise TokenMalformedError(reason="wrong issuer")
        try:
            return TokenClaims(
                subject=str(payload["sub"]),
                email=str(payload["email"]),
                username=str(payload["username"]),
                role=Role(payload["role"]),
                issued_at=clock.from_timestamp(payload["iat"]),
                not_before=clock.from_timestamp(payload["nbf"]),
                expires_at=clock.from_timestamp(payload["exp"]),
                issuer=payload["iss"],
                session_id=payload.get("sid"),
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise TokenMalformedError(reason="invalid claim values") from exc
