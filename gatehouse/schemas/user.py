"""User schemas."""
from pydantic import BaseModel, Field

from gatehouse.models.user import Role


class UserResponse(BaseModel):
    """User info response."""

    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    role: Role
    phone_number: str | None = None
    is_active: bool
    email_verified: bool
    two_factor_enabled: bool
    two_factor_method: str | None = None
    last_login_at: str | None = None
    created_at: str

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """Profile fields an owner may change."""

    first_name: str | None = Field(None, max_length=50)
    last_name: str | None = Field(None, max_length=50)
    phone_number: str | None = Field(None, min_length=7, max_length=32, pattern=r"^\+?[0-9 ()-]+$")


class RoleUpdate(BaseModel):
    role: Role


class StatusUpdate(BaseModel):
    is_active: bool
