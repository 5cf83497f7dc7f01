from types import SimpleNamespace

import pytest

from bakery_orders.core.exceptions import ForbiddenError
from bakery_orders.core.scope import (
    AdminScope,
    BranchScope,
    CenterScope,
    branch_visibility_clause,
    can_see_branch,
    ensure_branch_access,
    ensure_can_decide,
    order_visibility_clause,
    scope_for_user,
)
from bakery_orders.models import Branch, Order, UserRole


def user(role, branch_id=None, center_id=None):
    return SimpleNamespace(id=5, role=role, branch_id=branch_id, center_id=center_id)


def test_scope_for_user_per_role():
    assert scope_for_user(user(UserRole.ADMIN)) == AdminScope(user_id=5)
    assert scope_for_user(user(UserRole.CENTER, center_id=2)) == CenterScope(center_id=2, user_id=5)
    assert scope_for_user(user(UserRole.BRANCH, branch_id=3)) == BranchScope(branch_id=3, user_id=5)


def test_scope_for_unlinked_user_is_forbidden():
    with pytest.raises(ForbiddenError):
        scope_for_user(user(UserRole.BRANCH))
    with pytest.raises(ForbiddenError):
        scope_for_user(user(UserRole.CENTER))


def test_can_see_branch():
    branch = SimpleNamespace(id=3, center_id=2)
    assert can_see_branch(AdminScope(), branch)
    assert can_see_branch(CenterScope(center_id=2), branch)
    assert not can_see_branch(CenterScope(center_id=1), branch)
    assert can_see_branch(BranchScope(branch_id=3), branch)
    assert not can_see_branch(BranchScope(branch_id=4), branch)


def test_ensure_branch_access_raises_forbidden():
    with pytest.raises(ForbiddenError):
        ensure_branch_access(CenterScope(center_id=1), SimpleNamespace(id=3, center_id=2))


def test_unknown_scope_is_a_programming_error():
    with pytest.raises(TypeError):
        can_see_branch(object(), SimpleNamespace(id=1, center_id=1))


def test_only_branch_scope_cannot_decide():
    ensure_can_decide(AdminScope())
    ensure_can_decide(CenterScope(center_id=1))
    with pytest.raises(ForbiddenError):
        ensure_can_decide(BranchScope(branch_id=1))


def test_visibility_clauses(db, seed, scopes, make_order):
    make_order(scope_name="kadikoy")
    make_order(scope_name="besiktas")

    def visible_orders(scope):
        clause = order_visibility_clause(scope)
        query = db.query(Order)
        return query.all() if clause is None else query.filter(clause).all()

    assert branch_visibility_clause(AdminScope()) is None
    assert len(visible_orders(scopes["admin"])) == 2
    assert [o.branch.name for o in visible_orders(scopes["north"])] == ["Kadikoy"]
    assert [o.branch.name for o in visible_orders(scopes["besiktas"])] == ["Besiktas"]

    north_branches = db.query(Branch).filter(branch_visibility_clause(scopes["north"])).all()
    assert {b.name for b in north_branches} == {"Kadikoy", "Uskudar"}
