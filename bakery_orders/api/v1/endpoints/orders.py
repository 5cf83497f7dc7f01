# api/v1/endpoints/orders.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import MANAGERS, ORDERING, get_current_user, get_scope, require_roles
from ....core.exceptions import ValidationError
from ....core.rate_limit import user_rate_limit
from ....core.scope import BranchScope, Scope, own_branch_scope
from ....models.user import User
from ....schemas.order import (
    BulkDecisionIn,
    BulkDecisionResponse,
    CarryoverCandidate,
    ItemDecisionIn,
    OrderCreate,
    OrderResponse,
)
from ....services.approval_service import ApprovalService, ItemDecisionRequest
from ....services.carryover_service import CarryoverService
from ....services.order_service import OrderService

router = APIRouter()

managers = Depends(require_roles(*MANAGERS))


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[
        Depends(require_roles(*ORDERING)),
        Depends(user_rate_limit("order-create", max_requests=30, window_seconds=60))
    ]
)
async def create_order(
    order_data: OrderCreate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """
    Place a branch order. Prices are taken from the live catalog with the
    branch adjustments applied and frozen on the order lines.
    """
    order = OrderService(db).create_order(
        scope,
        branch_id=order_data.branch_id,
        delivery_date=order_data.delivery_date,
        delivery_time=order_data.delivery_time,
        items=order_data.items,
        carryovers=order_data.carryovers,
        note=order_data.note,
    )
    return OrderResponse.from_order(order)


@router.get("/my", response_model=List[OrderResponse])
async def list_my_orders(
    on_date: Optional[date] = Query(None, alias="date"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ORDERING))
):
    """Orders of the caller's own branch; admins need a branch link"""
    orders = OrderService(db).list_orders(
        own_branch_scope(current_user), on_date=on_date, date_from=date_from, date_to=date_to
    )
    return [OrderResponse.from_order(order) for order in orders]


@router.get("", response_model=List[OrderResponse], dependencies=[managers])
async def list_orders(
    on_date: Optional[date] = Query(None, alias="date"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Orders visible to the caller, newest first, by local creation day"""
    orders = OrderService(db).list_orders(scope, on_date=on_date, date_from=date_from, date_to=date_to)
    return [OrderResponse.from_order(order) for order in orders]


@router.get("/carryover", response_model=List[CarryoverCandidate], dependencies=[Depends(require_roles(*ORDERING))])
async def get_carryover_candidates(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    base_date: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Yesterday's requested trays per product, as carry-forward suggestions"""
    if isinstance(scope, BranchScope):
        branch_id = branch_id or scope.branch_id
    elif branch_id is None:
        raise ValidationError("branchId is required", field="branchId")

    return CarryoverService(db).get_carryover_candidates(scope, branch_id, base_date or date.today())


@router.put(
    "/decide-bulk",
    response_model=BulkDecisionResponse,
    dependencies=[managers, Depends(user_rate_limit("order-decide-bulk", max_requests=20, window_seconds=60))]
)
async def decide_orders_bulk(
    decision: BulkDecisionIn,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Approve, reject or partially approve many pending orders at once"""
    result = ApprovalService(db).bulk_decide(
        scope,
        approve_ids=decision.approve_ids,
        reject_ids=decision.reject_ids,
        item_decisions=[
            ItemDecisionRequest(d.order_id, tuple(d.approve_item_ids), tuple(d.reject_item_ids))
            for d in decision.item_decisions
        ],
    )
    return BulkDecisionResponse.from_result(result)


@router.get("/{order_id}", response_model=OrderResponse, dependencies=[Depends(get_current_user)])
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return OrderResponse.from_order(OrderService(db).get_order(scope, order_id))


@router.put("/{order_id}/approve", response_model=OrderResponse, dependencies=[managers])
async def approve_order(
    order_id: int,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return OrderResponse.from_order(ApprovalService(db).approve_order(scope, order_id))


@router.put("/{order_id}/reject", response_model=OrderResponse, dependencies=[managers])
async def reject_order(
    order_id: int,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return OrderResponse.from_order(ApprovalService(db).reject_order(scope, order_id))


@router.put("/{order_id}/decide-items", response_model=OrderResponse, dependencies=[managers])
async def decide_order_items(
    order_id: int,
    decision: ItemDecisionIn,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Approve the listed items; every other item of the order is rejected"""
    order = ApprovalService(db).decide_items(
        scope, order_id, decision.approve_item_ids, decision.reject_item_ids
    )
    return OrderResponse.from_order(order)


@router.put("/{order_id}/deliver", response_model=OrderResponse, dependencies=[managers])
async def mark_order_delivered(
    order_id: int,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return OrderResponse.from_order(ApprovalService(db).mark_delivered(scope, order_id))
