from typing import Optional

from pydantic import Field, field_validator

from .auth import UserResponse
from .base import CamelModel
from ..models.user import UserRole


class UserCreate(CamelModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole
    display_name: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    branch_id: Optional[int] = None
    center_id: Optional[int] = None
    is_active: bool = True

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower()


class UserUpdate(CamelModel):
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    role: Optional[UserRole] = None
    display_name: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    branch_id: Optional[int] = None
    center_id: Optional[int] = None


class PasswordReset(CamelModel):
    new_password: Optional[str] = Field(None, min_length=6, max_length=128)


class PasswordResetResponse(CamelModel):
    ok: bool = True
    user_id: int
    temporary_password: str


class BranchProfile(CamelModel):
    id: int
    name: str
    manager: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ProfileResponse(CamelModel):
    user: UserResponse
    branch: Optional[BranchProfile] = None

    @classmethod
    def from_user(cls, user) -> "ProfileResponse":
        return cls(
            user=UserResponse.model_validate(user),
            branch=BranchProfile.model_validate(user.branch) if user.branch else None,
        )


class ProfileUpdate(CamelModel):
    email: Optional[str] = Field(None, min_length=3, max_length=255)
    display_name: Optional[str] = Field(None, max_length=120)
    branch_name: Optional[str] = Field(None, min_length=1, max_length=120)
    manager: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    address: Optional[str] = Field(None, max_length=500)


class PasswordChange(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)
