"""
Order models: orders, their line items with frozen unit prices, and the
informational carryover rows recorded alongside an order.
"""
import enum

from sqlalchemy import (
    Column, String, Integer, Numeric, Date, DateTime, Text, ForeignKey, Enum, CheckConstraint
)
from sqlalchemy.orm import relationship

from .base import BaseModel, TimestampMixin


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PARTIALLY_APPROVED = "PARTIALLY_APPROVED"
    REJECTED = "REJECTED"


class DeliveryStatus(str, enum.Enum):
    AWAITING = "AWAITING"
    DELIVERED = "DELIVERED"


DELIVERABLE_STATUSES = (OrderStatus.APPROVED, OrderStatus.PARTIALLY_APPROVED)


class Order(BaseModel, TimestampMixin):
    """Daily tray order placed by a branch."""

    __tablename__ = "orders"

    order_no = Column(String(32), unique=True, nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    status = Column(Enum(OrderStatus, native_enum=False, length=32), default=OrderStatus.PENDING, nullable=False, index=True)
    delivery_status = Column(
        Enum(DeliveryStatus, native_enum=False, length=16),
        default=DeliveryStatus.AWAITING,
        nullable=False
    )
    delivery_date = Column(Date, nullable=False)
    delivery_time = Column(String(5), nullable=False)
    note = Column(Text, default="", nullable=False)

    # Derived from the items; see services.approval_service.recompute_totals
    total_tray = Column(Integer, default=0, nullable=False)
    total_amount = Column(Numeric(14, 2), default=0, nullable=False)

    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    delivered_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    delivered_at = Column(DateTime, nullable=True)

    branch = relationship("Branch", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id"
    )
    carryovers = relationship(
        "OrderCarryover",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderCarryover.id"
    )

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    @property
    def is_deliverable(self) -> bool:
        return self.status in DELIVERABLE_STATUSES

    def __repr__(self):
        return f"<Order(id={self.id}, order_no={self.order_no}, status={self.status})>"


class OrderItem(BaseModel):
    """Line item; unit_price is a snapshot taken when the order was created."""

    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("qty_tray > 0", name="ck_order_items_qty_positive"),
        CheckConstraint(
            "approved_qty_tray IS NULL OR (approved_qty_tray >= 0 AND approved_qty_tray <= qty_tray)",
            name="ck_order_items_approved_qty_range"
        ),
    )

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    qty_tray = Column(Integer, nullable=False)
    approved_qty_tray = Column(Integer, nullable=True)
    unit_price = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")


class OrderCarryover(BaseModel):
    """Prior-day leftover stock reported with an order, in kilograms."""

    __tablename__ = "order_carryovers"

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    qty_kg = Column(Numeric(10, 3), nullable=False)

    order = relationship("Order", back_populates="carryovers")
    product = relationship("Product")
