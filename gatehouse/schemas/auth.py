"""Authentication schemas."""
from pydantic import BaseModel, EmailStr, Field, field_validator

from gatehouse.models.user import Role, TwoFactorMethod

# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


class UserRegister(BaseModel):
    """User registration request."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=8)
    first_name: str = Field("", max_length=50)
    last_name: str = Field("", max_length=50)
    phone_number: str | None = Field(None, min_length=7, max_length=32, pattern=r"^\+?[0-9 ()-]+$")
    role: Role | None = None  # Only honoured for admin callers

    @field_validator("password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


class UserLogin(BaseModel):
    """User login request."""

    # Not EmailStr: a malformed address must fail like any other bad credential
    email: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)


class TwoFactorVerify(BaseModel):
    user_id: str = Field(..., max_length=36)
    code: str = Field(..., max_length=32)


class TwoFactorEnable(BaseModel):
    method: TwoFactorMethod = TwoFactorMethod.EMAIL
    phone_number: str | None = Field(None, min_length=7, max_length=32, pattern=r"^\+?[0-9 ()-]+$")


class PasswordConfirm(BaseModel):
    password: str = Field(..., max_length=1024)


class PasswordChange(BaseModel):
    current_password: str = Field(..., max_length=1024)
    new_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


class PasswordForgot(BaseModel):
    email: str = Field(..., max_length=255)


class PasswordReset(BaseModel):
    email: str = Field(..., max_length=255)
    code: str = Field(..., max_length=32)
    new_password: str = Field(..., min_length=8)

    @field_validator("new_password")
    @classmethod
    def validate_password_bytes(cls, value: str) -> str:
        return _check_password_bytes(value)


class CodeSubmit(BaseModel):
    code: str = Field(..., max_length=32)


class Token(BaseModel):
    """Token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(BaseModel):
    """Either a token or a pending two-factor challenge."""

    access_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    two_factor_required: bool = False
    user_id: str


class SessionResponse(BaseModel):
    id: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str
    last_seen_at: str | None = None
    expires_at: str
    current: bool = False

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
