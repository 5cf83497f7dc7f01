from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from .base import CRUDBase
from ..models.catalog import (
    Center, Branch, Product, BranchPriceAdjustment, BranchProductAdjustment
)


class ProductRepository(CRUDBase[Product]):
    def __init__(self):
        super().__init__(Product)

    def get_by_code(self, db: Session, code: str) -> Optional[Product]:
        return db.query(Product).filter(Product.code == code).first()

    def get_by_codes(self, db: Session, codes: Iterable[str]) -> Dict[str, Product]:
        """Resolve product codes in one query, keyed by code."""
        codes = list(codes)
        if not codes:
            return {}
        products = db.query(Product).filter(Product.code.in_(codes)).all()
        return {product.code: product for product in products}

    def list_all(self, db: Session, active_only: bool = False) -> List[Product]:
        query = db.query(Product)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        return query.order_by(Product.created_at.asc(), Product.id.asc()).all()

    def set_status_all(self, db: Session, is_active: bool) -> int:
        count = db.query(Product).update({Product.is_active: is_active}, synchronize_session=False)
        db.flush()
        return count


class BranchRepository(CRUDBase[Branch]):
    def __init__(self):
        super().__init__(Branch)

    def get_with_pricing(self, db: Session, branch_id: int) -> Optional[Branch]:
        return (
            db.query(Branch)
            .options(joinedload(Branch.price_adjustment), joinedload(Branch.center))
            .filter(Branch.id == branch_id)
            .first()
        )

    def list_visible(self, db: Session, clause=None) -> List[Branch]:
        query = db.query(Branch).options(joinedload(Branch.price_adjustment), joinedload(Branch.center))
        if clause is not None:
            query = query.filter(clause)
        return query.order_by(Branch.name.asc()).all()

    def upsert_percent(self, db: Session, branch: Branch, percent: Decimal) -> BranchPriceAdjustment:
        adjustment = branch.price_adjustment
        if adjustment is None:
            adjustment = BranchPriceAdjustment(branch_id=branch.id, percent=percent)
            branch.price_adjustment = adjustment
            db.add(adjustment)
        else:
            adjustment.percent = percent
        db.flush()
        return adjustment

    def get_product_extras(self, db: Session, branch_id: int) -> Dict[int, Decimal]:
        """Sparse per-product extra amounts for a branch, keyed by product id."""
        rows = (
            db.query(BranchProductAdjustment.product_id, BranchProductAdjustment.extra_amount)
            .filter(BranchProductAdjustment.branch_id == branch_id)
            .all()
        )
        return {product_id: Decimal(str(amount)) for product_id, amount in rows}

    def get_product_adjustment(self, db: Session, branch_id: int, product_id: int) -> Optional[BranchProductAdjustment]:
        return (
            db.query(BranchProductAdjustment)
            .filter(
                BranchProductAdjustment.branch_id == branch_id,
                BranchProductAdjustment.product_id == product_id
            )
            .first()
        )


class CenterRepository(CRUDBase[Center]):
    def __init__(self):
        super().__init__(Center)

    def list_all(self, db: Session) -> List[Center]:
        return db.query(Center).order_by(Center.created_at.asc(), Center.id.asc()).all()


product_repo = ProductRepository()
branch_repo = BranchRepository()
center_repo = CenterRepository()
