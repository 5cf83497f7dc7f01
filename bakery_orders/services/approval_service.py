"""
Approval and delivery state machine.

Order status moves once, from PENDING to APPROVED, PARTIALLY_APPROVED or
REJECTED. Every decision, whole-order or per-item, is expressed as a total
mapping from item id to ``Approved(qty)`` or ``Rejected`` and applied by the
same routine, which then derives the order status and recomputes the totals
from approved quantities and the frozen unit prices.

Delivery is independent: AWAITING to DELIVERED, allowed only for APPROVED or
PARTIALLY_APPROVED orders.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..config.logging import get_logger
from ..core.exceptions import NotFoundError, OrderNotApprovedError, OrderNotPendingError
from ..core.scope import Scope, ensure_can_decide, ensure_order_access
from ..models.order import DeliveryStatus, Order, OrderItem, OrderStatus
from ..repositories.order_repo import order_repo
from .audit_service import record_audit
from .pricing import to_decimal

logger = get_logger(__name__)


@dataclass(frozen=True)
class Approved:
    qty_tray: int


@dataclass(frozen=True)
class Rejected:
    pass


REJECTED = Rejected()

ItemDecision = Union[Approved, Rejected]


@dataclass(frozen=True)
class ItemDecisionRequest:
    order_id: int
    approve_item_ids: Sequence[int] = ()
    reject_item_ids: Sequence[int] = ()


@dataclass
class BulkDecisionResult:
    approved_count: int = 0
    partially_approved_count: int = 0
    rejected_count: int = 0
    skipped_count: int = 0

    @property
    def affected_count(self) -> int:
        return self.approved_count + self.partially_approved_count + self.rejected_count

    def record(self, status: OrderStatus):
        if status == OrderStatus.APPROVED:
            self.approved_count += 1
        elif status == OrderStatus.PARTIALLY_APPROVED:
            self.partially_approved_count += 1
        else:
            self.rejected_count += 1


# ----------------------------------------------------------------------
# decision maps
# ----------------------------------------------------------------------

def approve_all(items: Iterable[OrderItem]) -> Dict[int, ItemDecision]:
    return {item.id: Approved(item.qty_tray) for item in items}


def reject_all(items: Iterable[OrderItem]) -> Dict[int, ItemDecision]:
    return {item.id: REJECTED for item in items}


def resolve_item_decisions(
    items: Iterable[OrderItem],
    approve_item_ids: Iterable[int],
    reject_item_ids: Iterable[int],
) -> Dict[int, ItemDecision]:
    """
    Total decision map for a per-item review. Only items explicitly approved
    are approved; anything rejected or not mentioned is rejected. An id in
    both lists is rejected. Ids that are not items of this order are ignored.
    """
    approve = set(approve_item_ids)
    reject = set(reject_item_ids)
    decisions: Dict[int, ItemDecision] = {}
    for item in items:
        if item.id in approve and item.id not in reject:
            decisions[item.id] = Approved(item.qty_tray)
        else:
            decisions[item.id] = REJECTED
    return decisions


def derive_status(items: Sequence[OrderItem]) -> OrderStatus:
    approved = sum(1 for item in items if (item.approved_qty_tray or 0) > 0)
    if items and approved == len(items):
        return OrderStatus.APPROVED
    if approved == 0:
        return OrderStatus.REJECTED
    return OrderStatus.PARTIALLY_APPROVED


def recompute_totals(order: Order) -> None:
    """Totals count approved quantities only, priced at the snapshot unit price."""
    total_tray = 0
    total_amount = Decimal(0)
    for item in order.items:
        qty = item.approved_qty_tray or 0
        if qty > 0:
            total_tray += qty
            total_amount += to_decimal(item.unit_price) * qty
    order.total_tray = total_tray
    order.total_amount = total_amount


def apply_decisions(
    order: Order,
    decisions: Dict[int, ItemDecision],
    actor_user_id: Optional[int],
    decided_at: datetime,
) -> OrderStatus:
    for item in order.items:
        decision = decisions.get(item.id, REJECTED)
        if isinstance(decision, Approved):
            item.approved_qty_tray = min(decision.qty_tray, item.qty_tray)
        else:
            item.approved_qty_tray = 0

    status = derive_status(order.items)
    order.status = status
    recompute_totals(order)
    if status == OrderStatus.REJECTED:
        order.approved_by = None
        order.approved_at = None
    else:
        order.approved_by = actor_user_id
        order.approved_at = decided_at
    return status


def _summary(order: Order) -> Dict[str, object]:
    return {
        "status": order.status.value if order.status else None,
        "deliveryStatus": order.delivery_status.value if order.delivery_status else None,
        "totalTray": order.total_tray,
        "totalAmount": str(order.total_amount),
    }


DecisionBuilder = Callable[[Order], Dict[int, ItemDecision]]


class ApprovalService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or datetime.now

    # ------------------------------------------------------------------
    # single order
    # ------------------------------------------------------------------

    def approve_order(self, scope: Scope, order_id: int) -> Order:
        return self._decide_single(scope, order_id, lambda order: approve_all(order.items), "ORDER_APPROVE")

    def reject_order(self, scope: Scope, order_id: int) -> Order:
        return self._decide_single(scope, order_id, lambda order: reject_all(order.items), "ORDER_REJECT")

    def decide_items(
        self,
        scope: Scope,
        order_id: int,
        approve_item_ids: Iterable[int],
        reject_item_ids: Iterable[int] = (),
    ) -> Order:
        approve_item_ids = list(approve_item_ids)
        reject_item_ids = list(reject_item_ids)
        return self._decide_single(
            scope,
            order_id,
            lambda order: resolve_item_decisions(order.items, approve_item_ids, reject_item_ids),
            "ORDER_ITEM_DECISION",
        )

    def _load_visible(self, scope: Scope, order_id: int) -> Order:
        ensure_can_decide(scope)
        order = order_repo.get_hydrated(self.db, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return ensure_order_access(scope, order)

    def _decide_single(self, scope: Scope, order_id: int, build: DecisionBuilder, action: str) -> Order:
        order = self._load_visible(scope, order_id)
        if not order.is_pending:
            raise OrderNotPendingError(order.order_no, order.status.value)

        status = self._decide_in_transaction(scope, order_id, build, action)
        if status is None:
            # lost the race to another reviewer
            self.db.expire_all()
            order = order_repo.get_hydrated(self.db, order_id)
            raise OrderNotPendingError(order.order_no, order.status.value)
        return order_repo.get_hydrated(self.db, order_id)

    def _decide_in_transaction(
        self, scope: Scope, order_id: int, build: DecisionBuilder, action: str
    ) -> Optional[OrderStatus]:
        """
        Apply one order's decision and commit it, or return None without
        changes when the order is no longer pending.
        """
        try:
            order = order_repo.lock_pending(self.db, order_id)
            if order is None:
                self.db.rollback()
                return None
            before = _summary(order)
            status = apply_decisions(order, build(order), scope.user_id, self.clock())
            record_audit(self.db, scope.user_id, action, "order", order.id, before=before, after=_summary(order))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.order_no} decided as {status.value} by user {scope.user_id}")
        return status

    # ------------------------------------------------------------------
    # bulk
    # ------------------------------------------------------------------

    def bulk_decide(
        self,
        scope: Scope,
        approve_ids: Iterable[int] = (),
        reject_ids: Iterable[int] = (),
        item_decisions: Iterable[ItemDecisionRequest] = (),
    ) -> BulkDecisionResult:
        """
        Decide a mixed batch of orders. Each order commits on its own; orders
        that are missing or no longer pending are skipped. An order named more
        than once is decided once: reject beats approve, and an explicit
        per-item decision beats both. Any order outside the caller's scope
        fails the whole batch before anything is written.
        """
        ensure_can_decide(scope)

        plan: Dict[int, tuple] = {}
        for order_id in approve_ids:
            plan[order_id] = ("approve",)
        for order_id in reject_ids:
            plan[order_id] = ("reject",)
        for request in item_decisions:
            plan[request.order_id] = ("items", list(request.approve_item_ids), list(request.reject_item_ids))

        orders = order_repo.get_many(self.db, plan.keys())
        for order in orders.values():
            ensure_order_access(scope, order)

        result = BulkDecisionResult()
        for order_id in sorted(plan):
            if order_id not in orders:
                result.skipped_count += 1
                continue
            status = self._decide_in_transaction(scope, order_id, self._builder(plan[order_id]), "ORDER_BULK_DECISION")
            if status is None:
                result.skipped_count += 1
                continue
            result.record(status)

        logger.info(
            f"Bulk decision by user {scope.user_id}: "
            f"{result.approved_count} approved, {result.partially_approved_count} partial, "
            f"{result.rejected_count} rejected, {result.skipped_count} skipped"
        )
        return result

    @staticmethod
    def _builder(entry: tuple) -> DecisionBuilder:
        kind = entry[0]
        if kind == "approve":
            return lambda order: approve_all(order.items)
        if kind == "reject":
            return lambda order: reject_all(order.items)
        approve_item_ids, reject_item_ids = entry[1], entry[2]
        return lambda order: resolve_item_decisions(order.items, approve_item_ids, reject_item_ids)

    # ------------------------------------------------------------------
    # delivery
    # ------------------------------------------------------------------

    def mark_delivered(self, scope: Scope, order_id: int) -> Order:
        """
        Flag an approved order as delivered. Repeating the call on a
        delivered order changes nothing and keeps the first delivery stamp.
        """
        order = self._load_visible(scope, order_id)
        if not order.is_deliverable:
            raise OrderNotApprovedError(order.order_no, order.status.value)
        if order.delivery_status == DeliveryStatus.DELIVERED:
            logger.info(f"Order {order.order_no} already delivered; ignoring repeat call")
            return order

        try:
            locked = (
                self.db.query(Order)
                .filter(Order.id == order_id)
                .with_for_update()
                .populate_existing()
                .one()
            )
            if locked.delivery_status != DeliveryStatus.DELIVERED:
                before = _summary(locked)
                locked.delivery_status = DeliveryStatus.DELIVERED
                locked.delivered_by = scope.user_id
                locked.delivered_at = self.clock()
                record_audit(self.db, scope.user_id, "ORDER_DELIVER", "order", locked.id, before=before, after=_summary(locked))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.order_no} delivered by user {scope.user_id}")
        return order_repo.get_hydrated(self.db, order_id)
