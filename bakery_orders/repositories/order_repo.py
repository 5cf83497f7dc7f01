from datetime import datetime
from typing import Dict, Iterable, List, Optional, Any

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload, joinedload

from .base import CRUDBase
from ..models.catalog import Product
from ..models.order import Order, OrderCarryover, OrderItem, OrderStatus


def _hydrated(query):
    return query.options(
        joinedload(Order.branch),
        selectinload(Order.items).joinedload(OrderItem.product),
        selectinload(Order.carryovers).joinedload(OrderCarryover.product),
    )


class OrderRepository(CRUDBase[Order]):
    def __init__(self):
        super().__init__(Order)

    def get_hydrated(self, db: Session, order_id: int) -> Optional[Order]:
        """Order with branch, items and products loaded"""
        return _hydrated(db.query(Order)).filter(Order.id == order_id).first()

    def get_many(self, db: Session, order_ids: Iterable[int]) -> Dict[int, Order]:
        order_ids = list(set(order_ids))
        if not order_ids:
            return {}
        orders = db.query(Order).options(joinedload(Order.branch)).filter(Order.id.in_(order_ids)).all()
        return {order.id: order for order in orders}

    def lock_pending(self, db: Session, order_id: int) -> Optional[Order]:
        """
        Re-read an order inside the current transaction only if it is still
        pending. Uses SELECT ... FOR UPDATE where the database supports it so
        two concurrent decisions on the same order serialize; the loser sees
        a non-pending order and gets None.
        """
        order = (
            db.query(Order)
            .filter(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if order is not None:
            db.refresh(order, attribute_names=["items"])
        return order

    def order_no_exists(self, db: Session, order_no: str) -> bool:
        return db.query(Order.id).filter(Order.order_no == order_no).first() is not None

    def list_visible(
        self,
        db: Session,
        clause=None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[Order]:
        """Orders matching the visibility clause, newest first"""
        query = _hydrated(db.query(Order))
        if clause is not None:
            query = query.filter(clause)
        if created_from is not None:
            query = query.filter(Order.created_at >= created_from)
        if created_to is not None:
            query = query.filter(Order.created_at < created_to)
        return query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    def sum_requested_by_product(
        self,
        db: Session,
        branch_id: int,
        created_from: datetime,
        created_to: datetime,
    ) -> List[Dict[str, Any]]:
        """Requested tray totals per product for a branch within [from, to)"""
        rows = (
            db.query(
                Product.code,
                Product.name,
                func.sum(OrderItem.qty_tray).label("qty_tray"),
            )
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(
                Order.branch_id == branch_id,
                Order.created_at >= created_from,
                Order.created_at < created_to,
            )
            .group_by(Product.id, Product.code, Product.name)
            .order_by(Product.name.asc())
            .all()
        )
        return [
            {"product_code": code, "name": name, "yesterday_tray": int(qty or 0)}
            for code, name, qty in rows
        ]

    def count_items_for_product(self, db: Session, product_id: int) -> int:
        """Order lines and carryover rows that reference a product"""
        items = db.query(func.count(OrderItem.id)).filter(OrderItem.product_id == product_id).scalar() or 0
        carried = db.query(func.count(OrderCarryover.id)).filter(OrderCarryover.product_id == product_id).scalar() or 0
        return items + carried


order_repo = OrderRepository()
