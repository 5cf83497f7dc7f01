"""
Role-scoped visibility.

Every authenticated user is reduced to exactly one scope:

* ``BranchScope``: a branch operator, bound to one branch
* ``CenterScope``: a center manager, bound to one center and its branches
* ``AdminScope``: unrestricted

Services receive a scope instead of a user and apply it before they read or
mutate anything. Cross-tenant access raises ``ForbiddenError`` while true
absence stays a not-found error.
"""
from dataclasses import dataclass
from typing import Union

from sqlalchemy import select

from .exceptions import BranchRequiredError, ForbiddenError
from ..config.logging import log_security_event
from ..core.security import SecurityEvent
from ..models.catalog import Branch
from ..models.order import Order
from ..models.user import User, UserRole


@dataclass(frozen=True)
class BranchScope:
    branch_id: int
    user_id: int = None


@dataclass(frozen=True)
class CenterScope:
    center_id: int
    user_id: int = None


@dataclass(frozen=True)
class AdminScope:
    user_id: int = None


Scope = Union[BranchScope, CenterScope, AdminScope]


def scope_for_user(user: User) -> Scope:
    """Build the scope for an authenticated user."""
    if user.role == UserRole.ADMIN:
        return AdminScope(user_id=user.id)
    if user.role == UserRole.CENTER:
        if user.center_id is None:
            raise ForbiddenError("Current user is not linked to a center")
        return CenterScope(center_id=user.center_id, user_id=user.id)
    if user.role == UserRole.BRANCH:
        if user.branch_id is None:
            raise ForbiddenError("Current user is not linked to a branch")
        return BranchScope(branch_id=user.branch_id, user_id=user.id)
    raise ForbiddenError(f"Unknown role: {user.role}")


def own_branch_scope(user: User) -> BranchScope:
    """
    Scope narrowed to the user's own branch. Admins may be linked to a
    branch too; anyone without a branch link gets BRANCH_REQUIRED.
    """
    if user.branch_id is None:
        raise BranchRequiredError()
    return BranchScope(branch_id=user.branch_id, user_id=user.id)


def _unknown_scope(scope) -> TypeError:
    return TypeError(f"Unsupported scope: {scope!r}")


def branch_visibility_clause(scope: Scope):
    """SQL predicate restricting Branch rows to the scope, or None for no restriction."""
    if isinstance(scope, AdminScope):
        return None
    if isinstance(scope, CenterScope):
        return Branch.center_id == scope.center_id
    if isinstance(scope, BranchScope):
        return Branch.id == scope.branch_id
    raise _unknown_scope(scope)


def order_visibility_clause(scope: Scope):
    """SQL predicate restricting Order rows to the scope, or None for no restriction."""
    if isinstance(scope, AdminScope):
        return None
    if isinstance(scope, CenterScope):
        center_branches = select(Branch.id).where(Branch.center_id == scope.center_id)
        return Order.branch_id.in_(center_branches)
    if isinstance(scope, BranchScope):
        return Order.branch_id == scope.branch_id
    raise _unknown_scope(scope)


def can_see_branch(scope: Scope, branch: Branch) -> bool:
    if isinstance(scope, AdminScope):
        return True
    if isinstance(scope, CenterScope):
        return branch.center_id == scope.center_id
    if isinstance(scope, BranchScope):
        return branch.id == scope.branch_id
    raise _unknown_scope(scope)


def ensure_branch_access(scope: Scope, branch: Branch) -> Branch:
    if not can_see_branch(scope, branch):
        log_security_event(
            SecurityEvent.CROSS_TENANT_ACCESS,
            user_id=scope.user_id,
            details=f"branch {branch.id}"
        )
        raise ForbiddenError("Branch belongs to another tenant")
    return branch


def ensure_order_access(scope: Scope, order: Order) -> Order:
    if not can_see_branch(scope, order.branch):
        log_security_event(
            SecurityEvent.CROSS_TENANT_ACCESS,
            user_id=scope.user_id,
            details=f"order {order.order_no}"
        )
        raise ForbiddenError("Order belongs to another tenant")
    return order


def ensure_can_decide(scope: Scope) -> None:
    """Only center managers and admins approve, reject or deliver."""
    if isinstance(scope, BranchScope):
        raise ForbiddenError("Branch users cannot approve, reject or deliver orders")


def ensure_admin(scope: Scope, action: str) -> None:
    if not isinstance(scope, AdminScope):
        raise ForbiddenError(f"Only admins can {action}")
