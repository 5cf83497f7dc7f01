# api/v1/endpoints/products.py
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....core.dependencies import MANAGERS, get_current_user, get_scope, require_roles
from ....core.rate_limit import user_rate_limit
from ....core.scope import Scope
from ....schemas.catalog import (
    BulkStatusResponse,
    DeletedResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    StatusUpdate,
)
from ....services.catalog_service import ProductService

router = APIRouter()

catalog_write_limit = user_rate_limit("catalog", max_requests=60, window_seconds=60)
manager_only = [Depends(require_roles(*MANAGERS)), Depends(catalog_write_limit)]


@router.get("", response_model=List[ProductResponse], dependencies=[Depends(get_current_user)])
async def list_products(
    active_only: bool = Query(False, alias="activeOnly"),
    db: Session = Depends(get_db)
):
    """List the catalog in creation order"""
    return ProductService(db).list_products(active_only=active_only)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED, dependencies=manager_only)
async def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return ProductService(db).create_product(
        scope,
        name=product_data.name,
        base_price=product_data.base_price,
        code=product_data.code,
        image_ref=product_data.image_ref,
    )


@router.put("/status-bulk", response_model=BulkStatusResponse, dependencies=manager_only)
async def set_all_products_status(
    status_data: StatusUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Activate or deactivate every product at once"""
    updated = ProductService(db).set_status_all(scope, status_data.is_active)
    return BulkStatusResponse(updated=updated)


@router.put("/{product_id}", response_model=ProductResponse, dependencies=manager_only)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return ProductService(db).update_product(scope, product_id, product_data.model_dump(exclude_unset=True))


@router.put("/{product_id}/status", response_model=ProductResponse, dependencies=manager_only)
async def set_product_status(
    product_id: int,
    status_data: StatusUpdate,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    return ProductService(db).set_status(scope, product_id, status_data.is_active)


@router.delete("/{product_id}", response_model=DeletedResponse, dependencies=manager_only)
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    scope: Scope = Depends(get_scope)
):
    """Delete a product that no order references"""
    deleted_id = ProductService(db).delete_product(scope, product_id)
    return DeletedResponse(deleted_id=deleted_id)
