"""
Catalog and branch pricing models: centers, branches, products and the
per-branch price adjustments layered on top of product base prices.
"""
from sqlalchemy import (
    Column, String, Boolean, Integer, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from .base import BaseModel, TimestampMixin

PERCENT_MIN = -90
PERCENT_MAX = 200
EXTRA_AMOUNT_LIMIT = 100000


class Center(BaseModel, TimestampMixin):
    """Regional office (merkez) overseeing a set of branches."""

    __tablename__ = "centers"

    name = Column(String(120), unique=True, nullable=False)
    manager = Column(String(120), nullable=True)
    phone = Column(String(40), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    branches = relationship("Branch", back_populates="center")


class Branch(BaseModel, TimestampMixin):
    """Retail outlet (sube) that places orders."""

    __tablename__ = "branches"

    name = Column(String(120), nullable=False)
    center_id = Column(Integer, ForeignKey("centers.id"), nullable=False, index=True)
    manager = Column(String(120), nullable=True)
    phone = Column(String(40), nullable=True)
    address = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    center = relationship("Center", back_populates="branches")
    price_adjustment = relationship(
        "BranchPriceAdjustment",
        back_populates="branch",
        uselist=False,
        cascade="all, delete-orphan"
    )
    product_adjustments = relationship(
        "BranchProductAdjustment",
        back_populates="branch",
        cascade="all, delete-orphan"
    )
    orders = relationship("Order", back_populates="branch")

    @property
    def percent(self):
        """Branch-wide percent adjustment, 0 when none was stored yet."""
        if self.price_adjustment is None:
            return 0
        return self.price_adjustment.percent


class Product(BaseModel, TimestampMixin):
    """Catalog product sold by the tray."""

    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("base_price > 0", name="ck_products_base_price_positive"),
    )

    code = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(64), nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    image_ref = Column(String(1000), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class BranchPriceAdjustment(BaseModel, TimestampMixin):
    """Branch-wide markup or markdown in percent."""

    __tablename__ = "branch_price_adjustments"
    __table_args__ = (
        CheckConstraint(
            f"percent >= {PERCENT_MIN} AND percent <= {PERCENT_MAX}",
            name="ck_branch_price_adjustments_percent_range"
        ),
    )

    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), unique=True, nullable=False)
    percent = Column(Numeric(6, 2), default=0, nullable=False)

    branch = relationship("Branch", back_populates="price_adjustment")


class BranchProductAdjustment(BaseModel, TimestampMixin):
    """Flat per-branch, per-product amount added after the percent adjustment.

    Rows are sparse: a missing row means an extra amount of 0.
    """

    __tablename__ = "branch_product_adjustments"
    __table_args__ = (
        UniqueConstraint("branch_id", "product_id", name="uq_branch_product_adjustment"),
    )

    branch_id = Column(Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    extra_amount = Column(Numeric(12, 2), nullable=False)

    branch = relationship("Branch", back_populates="product_adjustments")
    product = relationship("Product")
