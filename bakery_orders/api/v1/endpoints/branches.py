# api/v1/endpoints/branches.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import ADMIN_ONLY, BRANCH_ONLY, MANAGERS, get_scope, require_roles
from ....core.rate_limit import user_rate_limit
from ....core.scope import Scope
from ....schemas.catalog import (
    BranchContextResponse,
    BranchCreate,
    BranchResponse,
    CenterAssignment,
    PriceAdjustmentUpdate,
    ProductAdjustmentResponse,
    ProductAdjustmentUpdate,
    StatusUpdate,
)
from ....services.catalog_service import BranchService

router = APIRouter()

catalog_write_limit = user_rate_limit("catalog", max_requests=60, window_seconds=60)


@router.get("", response_model=List[BranchResponse], dependencies=[Depends(require_roles(*MANAGERS))])
async def list_branches(
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Branches visible to the caller: a center sees its own, admins see all"""
    return [BranchResponse.from_branch(b) for b in BranchService(db).list_branches(scope)]


@router.get("/my-context", response_model=BranchContextResponse, dependencies=[Depends(require_roles(*BRANCH_ONLY))])
async def get_branch_context(
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """The caller's branch with the catalog priced for it"""
    context = BranchService(db).branch_context(scope)
    return BranchContextResponse(
        branch=BranchResponse.from_branch(context["branch"]),
        percent=context["percent"],
        products=context["products"],
    )


@router.post(
    "",
    response_model=BranchResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_roles(*ADMIN_ONLY)), Depends(catalog_write_limit)]
)
async def create_branch(
    branch_data: BranchCreate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    branch = BranchService(db).create_branch(scope, branch_data.name, branch_data.center_id)
    return BranchResponse.from_branch(branch)


@router.put(
    "/{branch_id}/status",
    response_model=BranchResponse,
    dependencies=[Depends(require_roles(*MANAGERS)), Depends(catalog_write_limit)]
)
async def set_branch_status(
    branch_id: int,
    status_data: StatusUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    branch = BranchService(db).set_status(scope, branch_id, status_data.is_active)
    return BranchResponse.from_branch(branch)


@router.put(
    "/{branch_id}/center",
    response_model=BranchResponse,
    dependencies=[Depends(require_roles(*ADMIN_ONLY)), Depends(catalog_write_limit)]
)
async def reassign_branch_center(
    branch_id: int,
    assignment: CenterAssignment,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    branch = BranchService(db).reassign_center(scope, branch_id, assignment.center_id)
    return BranchResponse.from_branch(branch)


@router.put(
    "/{branch_id}/price-adjustment",
    response_model=BranchResponse,
    dependencies=[Depends(require_roles(*MANAGERS)), Depends(catalog_write_limit)]
)
async def set_branch_price_adjustment(
    branch_id: int,
    adjustment: PriceAdjustmentUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    branch = BranchService(db).set_percent(scope, branch_id, adjustment.percent)
    return BranchResponse.from_branch(branch)


@router.put(
    "/{branch_id}/product-adjustments/{product_id}",
    response_model=ProductAdjustmentResponse,
    dependencies=[Depends(require_roles(*MANAGERS)), Depends(catalog_write_limit)]
)
async def set_branch_product_adjustment(
    branch_id: int,
    product_id: int,
    adjustment: ProductAdjustmentUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Set a per-product extra amount; zero removes the adjustment"""
    stored = BranchService(db).set_product_extra(scope, branch_id, product_id, adjustment.extra_amount)
    return ProductAdjustmentResponse(
        branch_id=branch_id,
        product_id=product_id,
        extra_amount=stored.extra_amount if stored is not None else 0,
    )
