# api/v1/endpoints/users.py
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import ADMIN_ONLY, get_scope, require_roles
from ....core.rate_limit import user_rate_limit
from ....core.scope import Scope
from ....schemas.auth import UserResponse
from ....schemas.catalog import StatusUpdate
from ....schemas.user import PasswordReset, PasswordResetResponse, UserCreate, UserUpdate
from ....services.user_service import UserService

router = APIRouter(dependencies=[Depends(require_roles(*ADMIN_ONLY))])


@router.get("", response_model=List[UserResponse])
async def list_users(
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return UserService(db).list_users(scope)


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(user_rate_limit("users", max_requests=30, window_seconds=60))]
)
async def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return UserService(db).create_user(
        scope,
        email=user_data.email,
        password=user_data.password,
        role=user_data.role,
        display_name=user_data.display_name,
        phone=user_data.phone,
        branch_id=user_data.branch_id,
        center_id=user_data.center_id,
        is_active=user_data.is_active,
    )


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    dependencies=[Depends(user_rate_limit("users", max_requests=30, window_seconds=60))]
)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return UserService(db).update_user(scope, user_id, user_data.model_dump(exclude_unset=True))


@router.put(
    "/{user_id}/status",
    response_model=UserResponse,
    dependencies=[Depends(user_rate_limit("users", max_requests=30, window_seconds=60))]
)
async def set_user_status(
    user_id: int,
    status_data: StatusUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return UserService(db).set_status(scope, user_id, status_data.is_active)


@router.put(
    "/{user_id}/reset-password",
    response_model=PasswordResetResponse,
    dependencies=[Depends(user_rate_limit("users", max_requests=30, window_seconds=60))]
)
async def reset_password(
    user_id: int,
    reset_data: Optional[PasswordReset] = Body(None),
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Set a new password, or generate a temporary one when none is given."""
    user, password = UserService(db).reset_password(
        scope, user_id, new_password=reset_data.new_password if reset_data else None
    )
    return PasswordResetResponse(user_id=user.id, temporary_password=password)
