# api/v1/endpoints/centers.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import ADMIN_ONLY, get_scope, require_roles
from ....core.rate_limit import user_rate_limit
from ....core.scope import Scope
from ....schemas.catalog import CenterCreate, CenterResponse, CenterUpdate, StatusUpdate
from ....services.catalog_service import CenterService

router = APIRouter(dependencies=[Depends(require_roles(*ADMIN_ONLY))])


@router.get("", response_model=List[CenterResponse])
async def list_centers(
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return CenterService(db).list_centers(scope)


@router.post(
    "",
    response_model=CenterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(user_rate_limit("catalog", max_requests=60, window_seconds=60))]
)
async def create_center(
    center_data: CenterCreate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return CenterService(db).create_center(
        scope, center_data.name, manager=center_data.manager, phone=center_data.phone
    )


@router.put(
    "/{center_id}",
    response_model=CenterResponse,
    dependencies=[Depends(user_rate_limit("catalog", max_requests=60, window_seconds=60))]
)
async def update_center(
    center_id: int,
    center_data: CenterUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return CenterService(db).update_center(scope, center_id, center_data.model_dump(exclude_unset=True))


@router.put(
    "/{center_id}/status",
    response_model=CenterResponse,
    dependencies=[Depends(user_rate_limit("catalog", max_requests=60, window_seconds=60))]
)
async def set_center_status(
    center_id: int,
    status_data: StatusUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return CenterService(db).set_status(scope, center_id, status_data.is_active)
