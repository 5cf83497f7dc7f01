import random
import re
from datetime import date, datetime
from decimal import Decimal

import pytest

from bakery_orders.core.exceptions import (
    BranchInactiveError,
    BranchNotFoundError,
    ForbiddenError,
    OrderNumberExhaustedError,
    ProductInactiveError,
    ProductNotFoundError,
    ValidationError,
)
from bakery_orders.models import AuditLog, Order, OrderStatus, DeliveryStatus
from bakery_orders.repositories.order_repo import order_repo
from bakery_orders.schemas.order import OrderLineIn
from bakery_orders.services.order_service import (
    OrderService,
    aggregate_quantities,
    format_order_no,
    order_number_candidates,
)

ORDER_NO_PATTERN = re.compile(r"^SP-\d{8}-\d{6}-\d{3}$")


class FixedRandom:
    def __init__(self, value):
        self.value = value

    def randrange(self, stop):
        return self.value


def lines(*pairs):
    return [OrderLineIn(product_code=code, qty_tray=qty) for code, qty in pairs]


def test_format_order_no():
    assert format_order_no(datetime(2026, 3, 9, 7, 5, 3), 42) == "SP-20260309-070503-042"


def test_order_number_candidates_are_bounded():
    candidates = list(order_number_candidates(lambda: datetime(2026, 1, 1), random.Random(1), 5))
    assert len(candidates) == 5
    assert all(ORDER_NO_PATTERN.match(order_no) for _, order_no in candidates)
    assert all(now == datetime(2026, 1, 1) for now, _ in candidates)


def test_aggregate_quantities_merges_duplicates_in_first_seen_order():
    totals = aggregate_quantities(lines(("pogaca", 1), ("su_boregi", 2), ("pogaca", 4)), "qty_tray")
    assert list(totals.items()) == [("pogaca", 5), ("su_boregi", 2)]


def test_create_order_prices_with_branch_adjustments(db, make_order):
    order = make_order(lines=(("su_boregi", 2), ("pogaca", 1)))

    assert ORDER_NO_PATTERN.match(order.order_no)
    assert order.status == OrderStatus.PENDING
    assert order.delivery_status == DeliveryStatus.AWAITING
    prices = {item.product.code: item.unit_price for item in order.items}
    assert prices == {"su_boregi": Decimal("110"), "pogaca": Decimal("225")}
    assert order.total_tray == 3
    assert order.total_amount == Decimal("445")
    assert all(item.approved_qty_tray is None for item in order.items)


def test_duplicate_product_lines_merge(make_order):
    order = make_order(scope_name="besiktas", lines=(("su_boregi", 2), ("su_boregi", 3)))

    assert len(order.items) == 1
    assert order.items[0].qty_tray == 5
    assert order.total_amount == Decimal("500")


def test_carryovers_are_stored_and_zero_rows_skipped(make_order):
    order = make_order(carryovers=(("su_boregi", Decimal("1.5")), ("pogaca", 0), ("su_boregi", Decimal("0.5"))))

    assert len(order.carryovers) == 1
    assert order.carryovers[0].product.code == "su_boregi"
    assert order.carryovers[0].qty_kg == Decimal("2.000")


def test_unit_price_snapshot_survives_price_changes(db, seed, make_order):
    order = make_order(scope_name="besiktas", lines=(("su_boregi", 1),))

    seed["products"]["su_boregi"].base_price = Decimal("999")
    db.commit()
    db.expire_all()

    reloaded = db.get(Order, order.id)
    assert reloaded.items[0].unit_price == Decimal("100")
    assert reloaded.total_amount == Decimal("100")


def test_unknown_product_rejects_whole_order(db, make_order):
    with pytest.raises(ProductNotFoundError):
        make_order(lines=(("su_boregi", 1), ("croissant", 1)))
    assert db.query(Order).count() == 0


def test_unknown_carryover_product_is_not_found(make_order):
    with pytest.raises(ProductNotFoundError):
        make_order(carryovers=(("croissant", 1),))


def test_inactive_product_rejected(db, make_order):
    with pytest.raises(ProductInactiveError):
        make_order(lines=(("eski_simit", 1),))
    assert db.query(Order).count() == 0


def test_inactive_branch_rejected(seed, make_order):
    with pytest.raises(BranchInactiveError):
        make_order(scope_name="admin", branch_id=seed["branches"]["uskudar"].id)


def test_missing_branch_is_not_found(make_order):
    with pytest.raises(BranchNotFoundError):
        make_order(scope_name="admin", branch_id=9999)


def test_admin_must_name_a_branch(make_order):
    with pytest.raises(ValidationError):
        make_order(scope_name="admin")


def test_branch_cannot_order_for_another_branch(seed, make_order):
    with pytest.raises(ForbiddenError):
        make_order(scope_name="kadikoy", branch_id=seed["branches"]["besiktas"].id)


def test_center_cannot_create_orders(make_order):
    with pytest.raises(ForbiddenError):
        make_order(scope_name="north")


def test_non_positive_quantity_rejected(db, scopes):
    line = OrderLineIn.model_construct(product_code="su_boregi", qty_tray=0)
    with pytest.raises(ValidationError):
        OrderService(db).create_order(scopes["kadikoy"], None, date(2026, 3, 11), "07:00", [line])


def test_creation_is_audited(db, make_order):
    order = make_order()
    entry = db.query(AuditLog).filter(AuditLog.action == "ORDER_CREATE").one()
    assert entry.entity_id == str(order.id)
    assert entry.after["orderNo"] == order.order_no


def test_hundred_sequential_orders_get_unique_numbers(db, scopes):
    service = OrderService(db, clock=lambda: datetime(2026, 3, 10, 9, 0, 0), rng=random.Random(2024))
    order_nos = set()
    for _ in range(100):
        order = service.create_order(scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1)))
        order_nos.add(order.order_no)

    assert len(order_nos) == 100
    assert db.query(Order).count() == 100


def test_order_number_exhaustion(db, scopes):
    service = OrderService(db, clock=lambda: datetime(2026, 3, 10, 9, 0, 0), rng=FixedRandom(7))
    first = service.create_order(scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1)))
    assert first.order_no == "SP-20260310-090000-007"

    with pytest.raises(OrderNumberExhaustedError) as exc_info:
        service.create_order(scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1)))

    assert exc_info.value.error_code == "ORDER_NUMBER_EXHAUSTED"
    assert db.query(Order).count() == 1


def test_list_orders_filters_by_local_day_and_scope(db, scopes, make_order, stepping_clock):
    make_order(scope_name="kadikoy", clock=stepping_clock(datetime(2026, 3, 9, 23, 59, 0)))
    make_order(scope_name="kadikoy", clock=stepping_clock(datetime(2026, 3, 10, 0, 0, 0)))
    make_order(scope_name="besiktas", clock=stepping_clock(datetime(2026, 3, 10, 12, 0, 0)))

    service = OrderService(db)
    on_day = service.list_orders(scopes["admin"], on_date=date(2026, 3, 10))
    assert len(on_day) == 2
    assert on_day[0].created_at > on_day[1].created_at

    north_orders = service.list_orders(scopes["north"], date_from=date(2026, 3, 9), date_to=date(2026, 3, 10))
    assert {o.branch.name for o in north_orders} == {"Kadikoy"}
    assert len(north_orders) == 2

    own = service.list_orders(scopes["besiktas"])
    assert len(own) == 1


def test_list_orders_rejects_inverted_range(db, scopes):
    with pytest.raises(ValidationError):
        OrderService(db).list_orders(scopes["admin"], date_from=date(2026, 3, 10), date_to=date(2026, 3, 9))


def test_get_order_scoped(db, scopes, make_order):
    order = make_order(scope_name="kadikoy")
    service = OrderService(db)

    assert service.get_order(scopes["north"], order.id).id == order.id
    with pytest.raises(ForbiddenError):
        service.get_order(scopes["besiktas"], order.id)
    with pytest.raises(ForbiddenError):
        service.get_order(scopes["south"], order.id)


def test_order_number_and_created_at_share_one_clock_reading(make_order, stepping_clock):
    order = make_order(clock=stepping_clock(datetime(2026, 3, 10, 8, 59, 59)))

    assert order.order_no.startswith("SP-20260310-085959-")
    assert order.created_at == datetime(2026, 3, 10, 8, 59, 59)


def test_insert_collision_is_retried_until_exhausted(db, scopes, monkeypatch):
    # the pre-insert lookup misses, so only the unique index catches the duplicate
    monkeypatch.setattr(order_repo, "order_no_exists", lambda session, order_no: False)
    service = OrderService(db, clock=lambda: datetime(2026, 3, 10, 9, 0, 0), rng=FixedRandom(7))
    service.create_order(scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1)))

    with pytest.raises(OrderNumberExhaustedError):
        service.create_order(scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1)))

    assert db.query(Order).count() == 1
    assert db.query(AuditLog).filter(AuditLog.action == "ORDER_CREATE").count() == 1


def test_insert_collision_retries_with_next_number(db, scopes, monkeypatch):
    monkeypatch.setattr(order_repo, "order_no_exists", lambda session, order_no: False)
    clock = lambda: datetime(2026, 3, 10, 9, 0, 0)
    OrderService(db, clock=clock, rng=FixedRandom(7)).create_order(
        scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("su_boregi", 1))
    )

    suffixes = iter([7, 8])

    class SequenceRandom:
        def randrange(self, stop):
            return next(suffixes)

    second = OrderService(db, clock=clock, rng=SequenceRandom()).create_order(
        scopes["besiktas"], None, date(2026, 3, 11), "07:00", lines(("pogaca", 2))
    )

    assert second.order_no == "SP-20260310-090000-008"
    assert [item.product.code for item in second.items] == ["pogaca"]
    assert db.query(Order).count() == 2
