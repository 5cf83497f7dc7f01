"""
User model for authentication and role-scoped access, plus the refresh
sessions that back token rotation.
"""
from datetime import datetime
import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship

from .base import BaseModel, TimestampMixin
from ..core.security import get_password_hash, verify_password


class UserRole(str, enum.Enum):
    """User roles enumeration."""
    ADMIN = "admin"
    CENTER = "merkez"
    BRANCH = "sube"


class User(BaseModel, TimestampMixin):
    """User model for authentication and authorization."""
    __tablename__ = 'users'

    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20), nullable=True, index=True)
    display_name = Column(String(120), nullable=True)
    password_hash = Column(String(255), nullable=False)

    role = Column(Enum(UserRole, native_enum=False, length=16), nullable=False)
    branch_id = Column(Integer, ForeignKey('branches.id'), nullable=True, index=True)
    center_id = Column(Integer, ForeignKey('centers.id'), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, nullable=True)

    branch = relationship("Branch")
    center = relationship("Center")
    refresh_sessions = relationship("RefreshSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def branch_name(self):
        return self.branch.name if self.branch else None

    @property
    def center_name(self):
        return self.center.name if self.center else None

    def set_password(self, password: str):
        """Hash and set the user password."""
        self.password_hash = get_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password is correct."""
        return verify_password(password, self.password_hash)

    def record_login(self):
        self.last_login = datetime.now()

    def __repr__(self):
        return f"<User(email={self.email}, role={self.role})>"


class RefreshSession(BaseModel, TimestampMixin):
    """
    One issued refresh token, identified by its ``jti``. Refreshing revokes
    the row and links it to its replacement, so a token works once.
    """
    __tablename__ = 'refresh_sessions'

    jti = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    replaced_by_jti = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(1000), nullable=True)

    user = relationship("User", back_populates="refresh_sessions")

    def is_usable(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now

    def revoke(self, now: datetime, replaced_by: str = None):
        self.revoked_at = now
        self.replaced_by_jti = replaced_by
