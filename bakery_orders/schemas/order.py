from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from .base import CamelModel
from ..config.settings import get_settings

settings = get_settings()


class OrderLineIn(CamelModel):
    product_code: str = Field(..., min_length=1, max_length=64)
    qty_tray: int = Field(..., gt=0)


class CarryoverIn(CamelModel):
    product_code: str = Field(..., min_length=1, max_length=64)
    qty_kg: Decimal = Field(..., ge=0)


class OrderCreate(CamelModel):
    branch_id: Optional[int] = None
    delivery_date: date
    delivery_time: str = Field(settings.DEFAULT_DELIVERY_TIME, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    note: str = Field("", max_length=1000)
    items: List[OrderLineIn] = Field(..., min_length=1)
    carryovers: List[CarryoverIn] = Field(default_factory=list)

    @field_validator("note", mode="before")
    @classmethod
    def empty_note(cls, v):
        return v or ""


class ItemDecisionIn(CamelModel):
    approve_item_ids: List[int] = Field(default_factory=list)
    reject_item_ids: List[int] = Field(default_factory=list)


class OrderItemDecisionIn(ItemDecisionIn):
    order_id: int


class BulkDecisionIn(CamelModel):
    approve_ids: List[int] = Field(default_factory=list)
    reject_ids: List[int] = Field(default_factory=list)
    item_decisions: List[OrderItemDecisionIn] = Field(default_factory=list)


class BulkDecisionResponse(CamelModel):
    ok: bool = True
    approved_count: int
    partially_approved_count: int
    rejected_count: int
    skipped_count: int
    affected_count: int

    @classmethod
    def from_result(cls, result) -> "BulkDecisionResponse":
        return cls(
            approved_count=result.approved_count,
            partially_approved_count=result.partially_approved_count,
            rejected_count=result.rejected_count,
            skipped_count=result.skipped_count,
            affected_count=result.affected_count,
        )


class OrderItemResponse(CamelModel):
    id: int
    product_id: int
    product_code: str
    product_name: str
    qty_tray: int
    approved_qty_tray: Optional[int] = None
    unit_price: float
    line_total: float


class CarryoverResponse(CamelModel):
    product_id: int
    product_code: str
    product_name: str
    qty_kg: float


class OrderResponse(CamelModel):
    id: int
    order_no: str
    branch_id: int
    branch_name: Optional[str] = None
    status: str
    delivery_status: str
    delivery_date: date
    delivery_time: str
    note: str = ""
    total_tray: int
    total_amount: float
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    delivered_by: Optional[int] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse] = Field(default_factory=list)
    carryovers: List[CarryoverResponse] = Field(default_factory=list)

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        items = []
        for item in order.items:
            # totals follow the approved quantity once the order is decided
            qty = item.qty_tray if item.approved_qty_tray is None else item.approved_qty_tray
            items.append(OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                product_code=item.product.code,
                product_name=item.product.name,
                qty_tray=item.qty_tray,
                approved_qty_tray=item.approved_qty_tray,
                unit_price=item.unit_price,
                line_total=Decimal(str(item.unit_price)) * qty,
            ))
        return cls(
            id=order.id,
            order_no=order.order_no,
            branch_id=order.branch_id,
            branch_name=order.branch.name if order.branch else None,
            status=order.status.value,
            delivery_status=order.delivery_status.value,
            delivery_date=order.delivery_date,
            delivery_time=order.delivery_time,
            note=order.note or "",
            total_tray=order.total_tray,
            total_amount=order.total_amount,
            approved_by=order.approved_by,
            approved_at=order.approved_at,
            delivered_by=order.delivered_by,
            delivered_at=order.delivered_at,
            created_at=order.created_at,
            items=items,
            carryovers=[
                CarryoverResponse(
                    product_id=row.product_id,
                    product_code=row.product.code,
                    product_name=row.product.name,
                    qty_kg=row.qty_kg,
                )
                for row in order.carryovers
            ],
        )


class CarryoverCandidate(CamelModel):
    product_code: str
    name: str
    yesterday_tray: int
