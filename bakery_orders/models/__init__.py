from .base import Base, BaseModel
from .catalog import Center, Branch, Product, BranchPriceAdjustment, BranchProductAdjustment
from .order import Order, OrderItem, OrderCarryover, OrderStatus, DeliveryStatus
from .user import User, UserRole, RefreshSession
from .audit import AuditLog

__all__ = [
    "Base",
    "BaseModel",
    "Center",
    "Branch",
    "Product",
    "BranchPriceAdjustment",
    "BranchProductAdjustment",
    "Order",
    "OrderItem",
    "OrderCarryover",
    "OrderStatus",
    "DeliveryStatus",
    "User",
    "UserRole",
    "RefreshSession",
    "AuditLog",
]
