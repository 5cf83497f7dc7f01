"""
Catalog administration: products, branches, centers and branch pricing.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..config.logging import get_logger
from ..core.exceptions import (
    BranchNotFoundError,
    CenterNotFoundError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ProductExistsError,
    ProductInUseError,
    ValidationError,
)
from ..core.scope import (
    BranchScope,
    Scope,
    branch_visibility_clause,
    ensure_admin,
    ensure_branch_access,
)
from ..models.catalog import (
    Branch,
    BranchProductAdjustment,
    Center,
    Product,
    EXTRA_AMOUNT_LIMIT,
    PERCENT_MAX,
    PERCENT_MIN,
)
from ..repositories.catalog_repo import branch_repo, center_repo, product_repo
from ..repositories.order_repo import order_repo
from ..utils.text_utils import to_code
from .audit_service import record_audit
from .pricing import price_branch_catalog, to_decimal

logger = get_logger(__name__)

# extra amounts closer to zero than this are stored as "no adjustment"
ZERO_TOLERANCE = Decimal("0.005")


class ProductService:
    def __init__(self, db: Session):
        self.db = db

    def list_products(self, active_only: bool = False) -> List[Product]:
        return product_repo.list_all(self.db, active_only=active_only)

    def _get(self, product_id: int) -> Product:
        product = product_repo.get(self.db, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def create_product(
        self,
        scope: Scope,
        name: str,
        base_price: Decimal,
        code: Optional[str] = None,
        image_ref: Optional[str] = None,
    ) -> Product:
        code = to_code(code) if code else to_code(name)
        if not code:
            raise ValidationError("Product code could not be generated", field="code")
        if to_decimal(base_price) <= 0:
            raise ValidationError("basePrice must be positive", field="basePrice")
        if product_repo.get_by_code(self.db, code) is not None:
            raise ProductExistsError(code)

        product = Product(
            code=code,
            name=name.strip(),
            base_price=to_decimal(base_price),
            image_ref=image_ref.strip() if image_ref else None,
            is_active=True,
        )
        product_repo.add(self.db, product)
        record_audit(self.db, scope.user_id, "PRODUCT_CREATE", "product", product.id, after=product.to_dict())
        self.db.commit()
        logger.info(f"Product {code} created")
        return product

    def update_product(self, scope: Scope, product_id: int, changes: Dict[str, Any]) -> Product:
        """Update name, base price or image; the code never changes after creation."""
        product = self._get(product_id)
        data: Dict[str, Any] = {}
        if changes.get("name") is not None:
            data["name"] = changes["name"].strip()
        if changes.get("base_price") is not None:
            if to_decimal(changes["base_price"]) <= 0:
                raise ValidationError("basePrice must be positive", field="basePrice")
            data["base_price"] = to_decimal(changes["base_price"])
        if changes.get("remove_image"):
            data["image_ref"] = None
        elif "image_ref" in changes:
            data["image_ref"] = changes["image_ref"].strip() if changes["image_ref"] else None

        if not data:
            raise ValidationError("No fields to update")

        before = product.to_dict()
        product_repo.update(self.db, db_obj=product, obj_in=data)
        record_audit(self.db, scope.user_id, "PRODUCT_UPDATE", "product", product.id, before=before, after=product.to_dict())
        self.db.commit()
        return product

    def set_status(self, scope: Scope, product_id: int, is_active: bool) -> Product:
        product = self._get(product_id)
        product.is_active = is_active
        record_audit(self.db, scope.user_id, "PRODUCT_STATUS", "product", product.id, after={"isActive": is_active})
        self.db.commit()
        return product

    def set_status_all(self, scope: Scope, is_active: bool) -> int:
        count = product_repo.set_status_all(self.db, is_active)
        record_audit(self.db, scope.user_id, "PRODUCT_STATUS_BULK", "product", after={"isActive": is_active, "count": count})
        self.db.commit()
        return count

    def delete_product(self, scope: Scope, product_id: int) -> int:
        product = self._get(product_id)
        if order_repo.count_items_for_product(self.db, product.id):
            raise ProductInUseError(product.code)
        before = product.to_dict()
        product_repo.delete(self.db, product)
        record_audit(self.db, scope.user_id, "PRODUCT_DELETE", "product", product_id, before=before)
        self.db.commit()
        return product_id


class BranchService:
    def __init__(self, db: Session):
        self.db = db

    def _get_visible(self, scope: Scope, branch_id: int) -> Branch:
        branch = branch_repo.get_with_pricing(self.db, branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        return ensure_branch_access(scope, branch)

    def list_branches(self, scope: Scope) -> List[Branch]:
        return branch_repo.list_visible(self.db, branch_visibility_clause(scope))

    def create_branch(self, scope: Scope, name: str, center_id: int) -> Branch:
        ensure_admin(scope, "create branches")
        if center_repo.get(self.db, center_id) is None:
            raise CenterNotFoundError(center_id)
        branch = Branch(name=name.strip(), center_id=center_id, is_active=True)
        branch_repo.add(self.db, branch)
        record_audit(self.db, scope.user_id, "BRANCH_CREATE", "branch", branch.id, after=branch.to_dict())
        self.db.commit()
        return branch

    def set_status(self, scope: Scope, branch_id: int, is_active: bool) -> Branch:
        if isinstance(scope, BranchScope):
            raise ForbiddenError("Branch users cannot change branch status")
        branch = self._get_visible(scope, branch_id)
        branch.is_active = is_active
        record_audit(self.db, scope.user_id, "BRANCH_STATUS", "branch", branch.id, after={"isActive": is_active})
        self.db.commit()
        return branch

    def reassign_center(self, scope: Scope, branch_id: int, center_id: int) -> Branch:
        ensure_admin(scope, "reassign branches")
        branch = self._get_visible(scope, branch_id)
        if center_repo.get(self.db, center_id) is None:
            raise CenterNotFoundError(center_id)
        before = {"centerId": branch.center_id}
        branch.center_id = center_id
        record_audit(self.db, scope.user_id, "BRANCH_CENTER", "branch", branch.id, before=before, after={"centerId": center_id})
        self.db.commit()
        self.db.refresh(branch)
        return branch

    def set_percent(self, scope: Scope, branch_id: int, percent) -> Branch:
        if isinstance(scope, BranchScope):
            raise ForbiddenError("Branch users cannot change pricing")
        percent = to_decimal(percent)
        if percent < PERCENT_MIN or percent > PERCENT_MAX:
            raise ValidationError(
                f"percent must be between {PERCENT_MIN} and {PERCENT_MAX}", field="percent"
            )
        branch = self._get_visible(scope, branch_id)
        before = {"percent": str(branch.percent)}
        branch_repo.upsert_percent(self.db, branch, percent)
        record_audit(self.db, scope.user_id, "BRANCH_PRICE_ADJUSTMENT", "branch", branch.id, before=before, after={"percent": str(percent)})
        self.db.commit()
        return branch

    def set_product_extra(self, scope: Scope, branch_id: int, product_id: int, extra_amount) -> Optional[BranchProductAdjustment]:
        """
        Store a per-product extra amount for a branch. A value of (almost)
        zero removes the row; returns the stored adjustment or None.
        """
        if isinstance(scope, BranchScope):
            raise ForbiddenError("Branch users cannot change pricing")
        amount = to_decimal(extra_amount)
        if abs(amount) > EXTRA_AMOUNT_LIMIT:
            raise ValidationError(
                f"extraAmount must be between -{EXTRA_AMOUNT_LIMIT} and {EXTRA_AMOUNT_LIMIT}",
                field="extraAmount"
            )
        branch = self._get_visible(scope, branch_id)
        if product_repo.get(self.db, product_id) is None:
            raise NotFoundError("Product", product_id)

        existing = branch_repo.get_product_adjustment(self.db, branch.id, product_id)
        before = {"extraAmount": str(existing.extra_amount)} if existing else None

        if abs(amount) < ZERO_TOLERANCE:
            result = None
            if existing is not None:
                branch_repo.delete(self.db, existing)
        elif existing is not None:
            existing.extra_amount = amount
            result = existing
        else:
            result = branch_repo.add(
                self.db,
                BranchProductAdjustment(branch_id=branch.id, product_id=product_id, extra_amount=amount)
            )

        record_audit(
            self.db, scope.user_id, "BRANCH_PRODUCT_ADJUSTMENT", "branch", branch.id,
            before=before,
            after={"productId": product_id, "extraAmount": str(amount) if result else None},
        )
        self.db.commit()
        return result

    def branch_context(self, scope: Scope) -> Dict[str, Any]:
        """The caller's own branch with the catalog quoted at its prices."""
        if not isinstance(scope, BranchScope):
            raise ForbiddenError("Only branch users have a branch context")
        branch = self._get_visible(scope, scope.branch_id)
        extras = branch_repo.get_product_extras(self.db, branch.id)
        products = product_repo.list_all(self.db)
        return {
            "branch": branch,
            "percent": to_decimal(branch.percent),
            "products": price_branch_catalog(products, branch.percent, extras),
        }


class CenterService:
    def __init__(self, db: Session):
        self.db = db

    def list_centers(self, scope: Scope) -> List[Center]:
        ensure_admin(scope, "list centers")
        return center_repo.list_all(self.db)

    def create_center(self, scope: Scope, name: str, manager: Optional[str] = None, phone: Optional[str] = None) -> Center:
        ensure_admin(scope, "create centers")
        name = name.strip()
        if center_repo.get_by_field(self.db, "name", name) is not None:
            raise ConflictError(f"Center already exists: {name}", error_code="CENTER_EXISTS")
        center = Center(name=name, manager=manager, phone=phone, is_active=True)
        center_repo.add(self.db, center)
        record_audit(self.db, scope.user_id, "CENTER_CREATE", "center", center.id, after=center.to_dict())
        self.db.commit()
        return center

    def _get(self, center_id: int) -> Center:
        center = center_repo.get(self.db, center_id)
        if center is None:
            raise CenterNotFoundError(center_id)
        return center

    def update_center(self, scope: Scope, center_id: int, changes: Dict[str, Any]) -> Center:
        """Update the contact details or the name; names stay unique."""
        ensure_admin(scope, "update centers")
        center = self._get(center_id)
        data: Dict[str, Any] = {}
        if changes.get("name") is not None:
            name = changes["name"].strip()
            if not name:
                raise ValidationError("Center name cannot be empty", field="name")
            existing = center_repo.get_by_field(self.db, "name", name)
            if existing is not None and existing.id != center.id:
                raise ConflictError(f"Center already exists: {name}", error_code="CENTER_EXISTS")
            data["name"] = name
        for field in ("manager", "phone", "email", "address"):
            if field in changes:
                value = changes[field]
                data[field] = (value.strip() or None) if value else None

        if not data:
            raise ValidationError("No fields to update")

        before = center.to_dict()
        center_repo.update(self.db, db_obj=center, obj_in=data)
        record_audit(self.db, scope.user_id, "CENTER_UPDATE", "center", center.id, before=before, after=center.to_dict())
        self.db.commit()
        return center

    def set_status(self, scope: Scope, center_id: int, is_active: bool) -> Center:
        ensure_admin(scope, "change center status")
        center = self._get(center_id)
        center.is_active = is_active
        record_audit(self.db, scope.user_id, "CENTER_STATUS", "center", center.id, after={"isActive": is_active})
        self.db.commit()
        logger.info(f"Center {center.id} {'activated' if is_active else 'deactivated'}")
        return center
