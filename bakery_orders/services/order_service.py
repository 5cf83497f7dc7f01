"""
Order creation and retrieval.

A branch cart is validated against the live catalog, priced with the
branch's adjustments and persisted together with its items and carryover
rows in a single commit. Unit prices are snapshotted on the items and never
recomputed afterwards.
"""
import random
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..core.exceptions import (
    BranchInactiveError,
    BranchNotFoundError,
    ForbiddenError,
    NotFoundError,
    OrderNumberExhaustedError,
    ProductInactiveError,
    ProductNotFoundError,
    ValidationError,
)
from ..core.scope import (
    AdminScope,
    BranchScope,
    CenterScope,
    Scope,
    ensure_branch_access,
    ensure_order_access,
    order_visibility_clause,
)
from ..models.order import Order, OrderItem, OrderCarryover, OrderStatus, DeliveryStatus
from ..repositories.catalog_repo import branch_repo, product_repo
from ..repositories.order_repo import order_repo
from ..utils.date_utils import DateUtils
from .audit_service import record_audit
from .pricing import adjusted_price, to_decimal

logger = get_logger(__name__)
settings = get_settings()

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    product_code: str
    qty_tray: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.qty_tray


def format_order_no(now: datetime, suffix: int) -> str:
    return f"SP-{now:%Y%m%d-%H%M%S}-{suffix:03d}"


def order_number_candidates(clock: Clock, rng: random.Random, attempts: int) -> Iterator[Tuple[datetime, str]]:
    """
    Yield at most ``attempts`` (timestamp, order number) pairs. The clock is
    read once per attempt so the number and the creation time agree.
    """
    for _ in range(attempts):
        now = clock()
        yield now, format_order_no(now, rng.randrange(1000))


def aggregate_quantities(lines: Sequence, field: str) -> "OrderedDict[str, object]":
    """Sum a quantity field per product code, keeping first-seen order."""
    totals: "OrderedDict[str, object]" = OrderedDict()
    for line in lines:
        code = line.product_code
        totals[code] = totals.get(code, 0) + getattr(line, field)
    return totals


def _is_order_no_conflict(exc: IntegrityError) -> bool:
    return "order_no" in str(getattr(exc, "orig", exc))


class OrderService:
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        max_order_no_attempts: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock or datetime.now
        self.rng = rng or random.SystemRandom()
        self.max_order_no_attempts = max_order_no_attempts or settings.ORDER_NUMBER_MAX_ATTEMPTS

    # ------------------------------------------------------------------
    # creation
    # ------------------------------------------------------------------

    def create_order(
        self,
        scope: Scope,
        branch_id: Optional[int],
        delivery_date: date,
        delivery_time: str,
        items: Sequence,
        carryovers: Sequence = (),
        note: str = "",
    ) -> Order:
        branch_id = self._resolve_branch_id(scope, branch_id)
        branch = branch_repo.get_with_pricing(self.db, branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        ensure_branch_access(scope, branch)
        if not branch.is_active:
            raise BranchInactiveError(branch.name)

        if not items:
            raise ValidationError("At least one order line is required", field="items")
        for line in items:
            if not isinstance(line.qty_tray, int) or line.qty_tray <= 0:
                raise ValidationError(
                    f"qtyTray must be a positive integer for {line.product_code}",
                    field="items"
                )

        qty_by_code = aggregate_quantities(items, "qty_tray")
        kg_by_code = aggregate_quantities(
            [c for c in carryovers if to_decimal(c.qty_kg) > 0], "qty_kg"
        )

        products = product_repo.get_by_codes(self.db, list(qty_by_code) + list(kg_by_code))
        for code in list(qty_by_code) + list(kg_by_code):
            if code not in products:
                raise ProductNotFoundError(code)
        for code in qty_by_code:
            if not products[code].is_active:
                raise ProductInactiveError(code)

        percent = to_decimal(branch.percent)
        extras = branch_repo.get_product_extras(self.db, branch.id)

        lines: List[PricedLine] = []
        for code, qty in qty_by_code.items():
            product = products[code]
            unit_price = adjusted_price(product.base_price, percent, extras.get(product.id, 0))
            lines.append(PricedLine(product.id, code, qty, unit_price))

        carryover_rows = [(products[code].id, to_decimal(qty)) for code, qty in kg_by_code.items()]
        total_tray = sum(line.qty_tray for line in lines)
        total_amount = sum((line.line_total for line in lines), Decimal(0))

        order_id = self._persist(
            branch_id=branch.id,
            delivery_date=delivery_date,
            delivery_time=delivery_time,
            note=(note or "").strip(),
            lines=lines,
            carryover_rows=carryover_rows,
            total_tray=total_tray,
            total_amount=total_amount,
            actor_user_id=scope.user_id,
        )
        return order_repo.get_hydrated(self.db, order_id)

    def _resolve_branch_id(self, scope: Scope, branch_id: Optional[int]) -> int:
        if isinstance(scope, BranchScope):
            if branch_id is not None and branch_id != scope.branch_id:
                raise ForbiddenError("Branch users can only order for their own branch")
            return scope.branch_id
        if isinstance(scope, AdminScope):
            if branch_id is None:
                raise ValidationError("branchId is required", field="branchId")
            return branch_id
        if isinstance(scope, CenterScope):
            raise ForbiddenError("Center users cannot create orders")
        raise TypeError(f"Unsupported scope: {scope!r}")

    def _persist(
        self,
        branch_id: int,
        delivery_date: date,
        delivery_time: str,
        note: str,
        lines: List[PricedLine],
        carryover_rows,
        total_tray: int,
        total_amount: Decimal,
        actor_user_id: Optional[int],
    ) -> int:
        attempts = 0
        for created_at, order_no in order_number_candidates(self.clock, self.rng, self.max_order_no_attempts):
            attempts += 1
            if order_repo.order_no_exists(self.db, order_no):
                logger.warning(f"Order number {order_no} already taken (attempt {attempts})")
                continue

            order = Order(
                order_no=order_no,
                branch_id=branch_id,
                status=OrderStatus.PENDING,
                delivery_status=DeliveryStatus.AWAITING,
                delivery_date=delivery_date,
                delivery_time=delivery_time,
                note=note,
                total_tray=total_tray,
                total_amount=total_amount,
                created_at=created_at,
                items=[
                    OrderItem(product_id=line.product_id, qty_tray=line.qty_tray, unit_price=line.unit_price)
                    for line in lines
                ],
                carryovers=[
                    OrderCarryover(product_id=product_id, qty_kg=qty_kg)
                    for product_id, qty_kg in carryover_rows
                ],
            )
            try:
                self.db.add(order)
                self.db.flush()
                record_audit(
                    self.db,
                    actor_user_id,
                    "ORDER_CREATE",
                    "order",
                    order.id,
                    after={"orderNo": order_no, "totalTray": total_tray, "totalAmount": str(total_amount)},
                )
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                if not _is_order_no_conflict(exc):
                    raise
                logger.warning(f"Order number {order_no} collided on insert (attempt {attempts})")
                continue
            except Exception:
                self.db.rollback()
                raise

            logger.info(
                f"Order {order_no} created for branch {branch_id}: {total_tray} trays, {total_amount}",
                extra={"order_no": order_no},
            )
            return order.id

        logger.error(f"Order number allocation exhausted after {attempts} attempts for branch {branch_id}")
        raise OrderNumberExhaustedError(attempts)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get_order(self, scope: Scope, order_id: int) -> Order:
        order = order_repo.get_hydrated(self.db, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return ensure_order_access(scope, order)

    def list_orders(
        self,
        scope: Scope,
        on_date: Optional[date] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Order]:
        """Visible orders, newest first, filtered by local creation day(s)."""
        if on_date is not None:
            created_from, created_to = DateUtils.day_bounds(on_date)
        else:
            if date_from and date_to and date_from > date_to:
                raise ValidationError("from must not be after to", field="from")
            created_from, created_to = DateUtils.range_bounds(date_from, date_to)

        return order_repo.list_visible(
            self.db,
            clause=order_visibility_clause(scope),
            created_from=created_from,
            created_to=created_to,
        )
