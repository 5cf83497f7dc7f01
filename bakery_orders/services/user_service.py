"""
User administration and self-service profile management.

Admins manage every account; everybody else can only read and edit their
own profile. Branch users additionally maintain the contact details of
their branch through the profile.
"""
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config.logging import get_logger, log_security_event
from ..core.exceptions import (
    BranchNotFoundError,
    CenterNotFoundError,
    EmailInUseError,
    ForbiddenError,
    PhoneInUseError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)
from ..core.scope import Scope, ensure_admin
from ..core.security import SecurityEvent
from ..models.user import User, UserRole
from ..repositories.catalog_repo import branch_repo, center_repo
from ..repositories.user_repo import user_repo
from ..utils.text_utils import normalize_phone
from .audit_service import record_audit
from .auth_service import revoke_user_sessions

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128
BRANCH_PROFILE_FIELDS = {"branch_name": "name", "manager": "manager", "phone": "phone", "address": "address"}


def _audit_view(user: User) -> Dict[str, Any]:
    data = user.to_dict()
    data.pop("password_hash", None)
    return data


def _check_password(password: Optional[str], field: str = "password") -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field=field)
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_LENGTH} characters", field=field)
    return password


def generate_temporary_password() -> str:
    return secrets.token_urlsafe(9)


class UserService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or datetime.now

    def _get(self, user_id: int) -> User:
        user = user_repo.get_with_links(self.db, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    def _normalize_email(self, email: Optional[str], owner_id: Optional[int] = None) -> str:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError("A valid email address is required", field="email")
        existing = user_repo.get_by_email(self.db, email)
        if existing is not None and existing.id != owner_id:
            raise EmailInUseError(email)
        return email

    def _normalize_phone(self, phone: Optional[str], owner_id: Optional[int] = None) -> Optional[str]:
        phone = normalize_phone(phone)
        if not phone:
            return None
        existing = user_repo.get_by_phone(self.db, phone)
        if existing is not None and existing.id != owner_id:
            raise PhoneInUseError(phone)
        return phone

    def _resolve_links(self, role: UserRole, branch_id: Optional[int], center_id: Optional[int]) -> Tuple[Optional[int], Optional[int]]:
        """Branch users need a branch, center users a center; admins carry neither."""
        if role == UserRole.BRANCH:
            if not branch_id:
                raise ValidationError("branchId is required for branch users", field="branchId")
            if branch_repo.get(self.db, branch_id) is None:
                raise BranchNotFoundError(branch_id)
            return branch_id, None
        if role == UserRole.CENTER:
            if not center_id:
                raise ValidationError("centerId is required for center users", field="centerId")
            if center_repo.get(self.db, center_id) is None:
                raise CenterNotFoundError(center_id)
            return None, center_id
        return None, None

    def _commit(self, email: str):
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent writer took the email between the check and the insert
            self.db.rollback()
            raise EmailInUseError(email)

    def list_users(self, scope: Scope) -> List[User]:
        ensure_admin(scope, "list users")
        return user_repo.list_all(self.db)

    def create_user(
        self,
        scope: Scope,
        email: str,
        password: str,
        role: UserRole,
        display_name: Optional[str] = None,
        phone: Optional[str] = None,
        branch_id: Optional[int] = None,
        center_id: Optional[int] = None,
        is_active: bool = True,
    ) -> User:
        ensure_admin(scope, "create users")
        role = UserRole(role)
        email = self._normalize_email(email)
        branch_id, center_id = self._resolve_links(role, branch_id, center_id)

        user = User(
            email=email,
            phone=self._normalize_phone(phone),
            display_name=display_name.strip() if display_name else None,
            role=role,
            branch_id=branch_id,
            center_id=center_id,
            is_active=is_active,
        )
        user.set_password(_check_password(password))
        user_repo.add(self.db, user)
        record_audit(self.db, scope.user_id, "USER_CREATE", "user", user.id, after=_audit_view(user))
        self._commit(email)
        logger.info(f"User {user.id} created with role {role.value}")
        return self._get(user.id)

    def update_user(self, scope: Scope, user_id: int, changes: Dict[str, Any]) -> User:
        """
        Update email, phone, display name, role or relation. The relation is
        re-validated against the resulting role, so switching a user to
        ``sube`` requires a branch in the same request unless one is set.
        """
        ensure_admin(scope, "update users")
        user = self._get(user_id)
        data: Dict[str, Any] = {}

        if changes.get("email") is not None:
            data["email"] = self._normalize_email(changes["email"], owner_id=user.id)
        if "phone" in changes:
            data["phone"] = self._normalize_phone(changes["phone"], owner_id=user.id)
        if "display_name" in changes:
            display_name = changes["display_name"]
            data["display_name"] = display_name.strip() if display_name else None

        touches_links = any(changes.get(key) is not None for key in ("role", "branch_id", "center_id"))
        if touches_links:
            role = UserRole(changes["role"]) if changes.get("role") is not None else user.role
            if user.id == scope.user_id and role != user.role:
                raise ValidationError("Admins cannot change their own role", field="role")
            branch_id, center_id = self._resolve_links(
                role,
                changes.get("branch_id") or user.branch_id,
                changes.get("center_id") or user.center_id,
            )
            data.update(role=role, branch_id=branch_id, center_id=center_id)

        if not data:
            raise ValidationError("No fields to update")

        before = _audit_view(user)
        user_repo.update(self.db, db_obj=user, obj_in=data)
        record_audit(self.db, scope.user_id, "USER_UPDATE", "user", user.id, before=before, after=_audit_view(user))
        self._commit(user.email)
        return self._get(user.id)

    def set_status(self, scope: Scope, user_id: int, is_active: bool) -> User:
        ensure_admin(scope, "change user status")
        user = self._get(user_id)
        if user.id == scope.user_id and not is_active:
            raise ValidationError("Admins cannot deactivate their own account", field="isActive")

        user.is_active = is_active
        revoked = 0 if is_active else revoke_user_sessions(self.db, user.id, self.clock())
        record_audit(self.db, scope.user_id, "USER_STATUS", "user", user.id, after={"isActive": is_active})
        self.db.commit()
        logger.info(f"User {user.id} {'activated' if is_active else f'deactivated, {revoked} sessions revoked'}")
        return user

    def reset_password(self, scope: Scope, user_id: int, new_password: Optional[str] = None) -> Tuple[User, str]:
        """
        Set a new password for a user and revoke their sessions. Without an
        explicit password a random temporary one is generated; it is returned
        once and never stored in clear text.
        """
        ensure_admin(scope, "reset passwords")
        user = self._get(user_id)
        password = _check_password(new_password) if new_password else generate_temporary_password()

        user.set_password(password)
        revoke_user_sessions(self.db, user.id, self.clock())
        record_audit(self.db, scope.user_id, "USER_PASSWORD_RESET", "user", user.id)
        self.db.commit()
        log_security_event(
            SecurityEvent.PASSWORD_RESET,
            user_id=str(user.id),
            details=f"reset by user {scope.user_id}"
        )
        return user, password

    def get_profile(self, user: User) -> User:
        return self._get(user.id)

    def update_profile(self, user: User, changes: Dict[str, Any]) -> User:
        """Own email and display name; branch users also edit their branch contact details."""
        user = self._get(user.id)
        data: Dict[str, Any] = {}
        if changes.get("email") is not None:
            data["email"] = self._normalize_email(changes["email"], owner_id=user.id)
        if "display_name" in changes:
            display_name = changes["display_name"]
            data["display_name"] = display_name.strip() if display_name else None

        branch_data: Dict[str, Any] = {}
        for field, column in BRANCH_PROFILE_FIELDS.items():
            if field not in changes:
                continue
            if user.role != UserRole.BRANCH or user.branch is None:
                raise ForbiddenError("Only branch users can edit branch details")
            value = changes[field].strip() if changes[field] else None
            if column == "name" and not value:
                raise ValidationError("Branch name cannot be empty", field="branchName")
            branch_data[column] = value

        if not data and not branch_data:
            raise ValidationError("No fields to update")

        before = _audit_view(user)
        if data:
            user_repo.update(self.db, db_obj=user, obj_in=data)
            record_audit(self.db, user.id, "PROFILE_UPDATE", "user", user.id, before=before, after=_audit_view(user))
        if branch_data:
            branch = user.branch
            branch_before = branch.to_dict()
            branch_repo.update(self.db, db_obj=branch, obj_in=branch_data)
            record_audit(self.db, user.id, "BRANCH_PROFILE_UPDATE", "branch", branch.id, before=branch_before, after=branch.to_dict())
        self._commit(user.email)
        return self._get(user.id)

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        user = self._get(user.id)
        if not user.check_password(current_password or ""):
            log_security_event(SecurityEvent.LOGIN_FAILURE, user_id=str(user.id), details="password change with wrong current password")
            raise UnauthorizedError("Current password is incorrect", error_code="INVALID_CREDENTIALS")
        _check_password(new_password, field="newPassword")
        if current_password == new_password:
            raise ValidationError("New password must differ from the current one", field="newPassword")

        user.set_password(new_password)
        record_audit(self.db, user.id, "PROFILE_PASSWORD_CHANGE", "user", user.id)
        self.db.commit()
        log_security_event(SecurityEvent.PASSWORD_CHANGED, user_id=str(user.id))
