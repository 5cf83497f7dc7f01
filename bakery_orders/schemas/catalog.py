from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=64)
    code: Optional[str] = Field(None, max_length=64)
    base_price: Decimal = Field(..., gt=0)
    image_ref: Optional[str] = Field(None, max_length=1000)


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=64)
    base_price: Optional[Decimal] = Field(None, gt=0)
    image_ref: Optional[str] = Field(None, max_length=1000)
    remove_image: bool = False


class StatusUpdate(CamelModel):
    is_active: bool


class ProductResponse(CamelModel):
    id: int
    code: str
    name: str
    base_price: float
    image_ref: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class BulkStatusResponse(CamelModel):
    ok: bool = True
    updated: int


class DeletedResponse(CamelModel):
    ok: bool = True
    deleted_id: int


class BranchCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    center_id: int


class CenterAssignment(CamelModel):
    center_id: int


class PriceAdjustmentUpdate(CamelModel):
    percent: Decimal = Field(..., ge=-90, le=200)


class ProductAdjustmentUpdate(CamelModel):
    extra_amount: Decimal = Field(..., ge=-100000, le=100000)


class ProductAdjustmentResponse(CamelModel):
    ok: bool = True
    branch_id: int
    product_id: int
    extra_amount: float


class BranchResponse(CamelModel):
    id: int
    name: str
    center_id: int
    center_name: Optional[str] = None
    is_active: bool
    percent: float = 0

    @classmethod
    def from_branch(cls, branch) -> "BranchResponse":
        return cls(
            id=branch.id,
            name=branch.name,
            center_id=branch.center_id,
            center_name=branch.center.name if branch.center else None,
            is_active=branch.is_active,
            percent=branch.percent,
        )


class QuotedProduct(CamelModel):
    id: int
    code: str
    name: str
    base_price: float
    extra_amount: float
    adjusted_price: float
    is_active: bool


class BranchContextResponse(CamelModel):
    branch: BranchResponse
    percent: float
    products: List[QuotedProduct]


class CenterCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    manager: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)


class CenterUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    manager: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=40)
    email: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=500)


class CenterResponse(CamelModel):
    id: int
    name: str
    manager: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
