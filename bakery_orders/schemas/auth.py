from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .base import CamelModel


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class RefreshRequest(CamelModel):
    """Body for refresh and logout; the refresh cookie is used when the field is absent."""
    refresh_token: Optional[str] = Field(None, max_length=4096)


class UserResponse(CamelModel):
    id: int
    email: str
    phone: Optional[str] = None
    display_name: Optional[str] = None
    role: str
    branch_id: Optional[int] = None
    branch_name: Optional[str] = None
    center_id: Optional[int] = None
    center_name: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def role_value(cls, v):
        return getattr(v, "value", v)


class TokenResponse(CamelModel):
    ok: bool = True
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    user: UserResponse
