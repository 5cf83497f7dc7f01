# api/v1/endpoints/profile.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import get_current_user
from ....core.rate_limit import user_rate_limit
from ....models.user import User
from ....schemas.base import OkResponse
from ....schemas.user import PasswordChange, ProfileResponse, ProfileUpdate
from ....services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=ProfileResponse)
async def read_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return ProfileResponse.from_user(UserService(db).get_profile(current_user))


@router.put(
    "/me",
    response_model=ProfileResponse,
    dependencies=[Depends(user_rate_limit("profile", max_requests=30, window_seconds=60))]
)
async def update_profile(
    profile_data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = UserService(db).update_profile(current_user, profile_data.model_dump(exclude_unset=True))
    return ProfileResponse.from_user(user)


@router.put(
    "/password",
    response_model=OkResponse,
    dependencies=[Depends(user_rate_limit("password", max_requests=10, window_seconds=900))]
)
async def change_password(
    password_data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    UserService(db).change_password(current_user, password_data.current_password, password_data.new_password)
    return OkResponse()
