from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..config.database import get_db
from ..config.logging import get_logger, log_security_event
from ..config.settings import get_settings
from ..models.user import User, UserRole
from .exceptions import ForbiddenError, UnauthorizedError
from .scope import Scope, scope_for_user
from .security import SecurityEvent, get_user_id_from_token

logger = get_logger(__name__)
settings = get_settings()
security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)


# Authentication dependencies
def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> User:
    """Get current authenticated user from the bearer header or the access cookie."""
    token = _extract_token(request, credentials)
    if not token:
        raise UnauthorizedError()

    user_id = get_user_id_from_token(token)
    if not user_id:
        raise UnauthorizedError("Invalid or expired token")

    try:
        user = db.query(User).filter(User.id == int(user_id)).first()
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid token payload")

    if not user:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        raise UnauthorizedError("User account is disabled")

    request.state.user_id = user.id
    return user


def get_scope(current_user: User = Depends(get_current_user)) -> Scope:
    return scope_for_user(current_user)


def require_roles(*roles: UserRole):
    """Dependency factory that admits only the given roles."""
    def dependency(request: Request, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            log_security_event(
                SecurityEvent.UNAUTHORIZED_ACCESS,
                user_id=str(current_user.id),
                details=f"{current_user.role.value} denied {request.method} {request.url.path}"
            )
            raise ForbiddenError()
        return current_user

    return dependency


ADMIN_ONLY = (UserRole.ADMIN,)
MANAGERS = (UserRole.CENTER, UserRole.ADMIN)
BRANCH_ONLY = (UserRole.BRANCH,)
ORDERING = (UserRole.BRANCH, UserRole.ADMIN)
