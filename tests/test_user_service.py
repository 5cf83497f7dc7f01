import pytest

from bakery_orders.core.exceptions import (
    BranchNotFoundError,
    EmailInUseError,
    ForbiddenError,
    PhoneInUseError,
    UnauthorizedError,
    ValidationError,
)
from bakery_orders.models import AuditLog, RefreshSession, UserRole
from bakery_orders.services.auth_service import AuthService
from bakery_orders.services.user_service import UserService
from bakery_orders.utils.text_utils import normalize_phone
from conftest import PASSWORD


@pytest.mark.parametrize(
    "raw, normalized",
    [
        ("0555 123 45 67", "905551234567"),
        ("(555) 123-4567", "905551234567"),
        ("+90 555 123 45 67", "905551234567"),
        ("", ""),
    ],
)
def test_normalize_phone(raw, normalized):
    assert normalize_phone(raw) == normalized


def test_create_branch_user(db, seed, scopes):
    user = UserService(db).create_user(
        scopes["admin"],
        email=" Yeni@Example.com ",
        password="tazeekmek",
        role=UserRole.BRANCH,
        phone="0555 123 45 67",
        branch_id=seed["branches"]["kadikoy"].id,
        center_id=seed["centers"]["north"].id,
    )

    assert user.email == "yeni@example.com"
    assert user.phone == "905551234567"
    assert user.branch_name == "Kadikoy"
    assert user.center_id is None
    assert user.check_password("tazeekmek")

    audit = db.query(AuditLog).filter(AuditLog.action == "USER_CREATE").one()
    assert "password_hash" not in audit.after


def test_create_user_validates_relation(db, seed, scopes):
    service = UserService(db)

    with pytest.raises(ValidationError) as excinfo:
        service.create_user(scopes["admin"], "a@example.com", "tazeekmek", UserRole.BRANCH)
    assert excinfo.value.field == "branchId"

    with pytest.raises(BranchNotFoundError):
        service.create_user(scopes["admin"], "a@example.com", "tazeekmek", UserRole.BRANCH, branch_id=999)

    with pytest.raises(ValidationError):
        service.create_user(scopes["admin"], "a@example.com", "tazeekmek", UserRole.CENTER)

    admin = service.create_user(
        scopes["admin"], "b@example.com", "tazeekmek", UserRole.ADMIN,
        branch_id=seed["branches"]["kadikoy"].id,
    )
    assert admin.branch_id is None and admin.center_id is None


def test_create_user_rejects_conflicts_and_short_password(db, seed, scopes):
    service = UserService(db)
    service.create_user(scopes["admin"], "c@example.com", "tazeekmek", UserRole.ADMIN, phone="5551234567")

    with pytest.raises(EmailInUseError):
        service.create_user(scopes["admin"], "KADIKOY@example.com", "tazeekmek", UserRole.ADMIN)
    with pytest.raises(PhoneInUseError):
        service.create_user(scopes["admin"], "d@example.com", "tazeekmek", UserRole.ADMIN, phone="0555 123 45 67")
    with pytest.raises(ValidationError):
        service.create_user(scopes["admin"], "d@example.com", "kisa", UserRole.ADMIN)


def test_user_admin_requires_admin_scope(db, seed, scopes):
    service = UserService(db)

    with pytest.raises(ForbiddenError):
        service.list_users(scopes["north"])
    with pytest.raises(ForbiddenError):
        service.set_status(scopes["kadikoy"], seed["users"]["besiktas"].id, False)

    assert len(service.list_users(scopes["admin"])) == 5


def test_update_user_moves_between_roles(db, seed, scopes):
    service = UserService(db)
    user_id = seed["users"]["kadikoy"].id

    with pytest.raises(ValidationError):
        service.update_user(scopes["admin"], user_id, {})
    with pytest.raises(ValidationError):
        service.update_user(scopes["admin"], user_id, {"role": UserRole.CENTER})

    moved = service.update_user(
        scopes["admin"], user_id, {"role": UserRole.CENTER, "center_id": seed["centers"]["south"].id}
    )
    assert moved.role == UserRole.CENTER
    assert moved.branch_id is None
    assert moved.center_name == "Merkez Guney"

    with pytest.raises(EmailInUseError):
        service.update_user(scopes["admin"], user_id, {"email": "admin@example.com"})


def test_admin_cannot_deactivate_self(db, seed, scopes):
    service = UserService(db)

    with pytest.raises(ValidationError):
        service.set_status(scopes["admin"], seed["users"]["admin"].id, False)
    with pytest.raises(ValidationError):
        service.update_user(scopes["admin"], seed["users"]["admin"].id, {"role": UserRole.BRANCH})


def test_deactivation_revokes_sessions(db, seed, scopes):
    _, _, refresh_token = AuthService(db).login("kadikoy@example.com", PASSWORD)

    user = UserService(db).set_status(scopes["admin"], seed["users"]["kadikoy"].id, False)

    assert user.is_active is False
    assert db.query(RefreshSession).filter(RefreshSession.revoked_at.is_(None)).count() == 0
    with pytest.raises(UnauthorizedError):
        AuthService(db).refresh(refresh_token)


def test_reset_password_generates_temporary_password(db, seed, scopes):
    service = UserService(db)
    user_id = seed["users"]["besiktas"].id
    AuthService(db).login("besiktas@example.com", PASSWORD)

    user, temporary = service.reset_password(scopes["admin"], user_id)

    assert len(temporary) >= 6
    assert user.check_password(temporary)
    assert not user.check_password(PASSWORD)
    assert db.query(RefreshSession).filter(RefreshSession.revoked_at.is_(None)).count() == 0

    user, chosen = service.reset_password(scopes["admin"], user_id, new_password="yenisifre")
    assert chosen == "yenisifre"
    assert user.check_password("yenisifre")


def test_branch_user_updates_profile_and_branch(db, seed):
    service = UserService(db)
    user = seed["users"]["kadikoy"]

    updated = service.update_profile(user, {
        "display_name": " Ayse ",
        "branch_name": "Kadikoy Moda",
        "manager": "Ayse Y.",
        "address": "Moda Cd. 1",
    })

    assert updated.display_name == "Ayse"
    assert updated.branch.name == "Kadikoy Moda"
    assert updated.branch.manager == "Ayse Y."
    actions = {row.action for row in db.query(AuditLog).all()}
    assert {"PROFILE_UPDATE", "BRANCH_PROFILE_UPDATE"} <= actions


def test_profile_rules(db, seed):
    service = UserService(db)

    with pytest.raises(ForbiddenError):
        service.update_profile(seed["users"]["north"], {"manager": "Mehmet"})
    with pytest.raises(ValidationError):
        service.update_profile(seed["users"]["north"], {})
    with pytest.raises(EmailInUseError):
        service.update_profile(seed["users"]["north"], {"email": "guney@example.com"})

    profile = service.get_profile(seed["users"]["north"])
    assert profile.center_name == "Merkez Kuzey"
    assert profile.branch is None


def test_change_password(db, seed):
    service = UserService(db)
    user = seed["users"]["besiktas"]

    with pytest.raises(UnauthorizedError) as excinfo:
        service.change_password(user, "wrong", "yenisifre")
    assert excinfo.value.error_code == "INVALID_CREDENTIALS"

    with pytest.raises(ValidationError):
        service.change_password(user, PASSWORD, "kisa")
    with pytest.raises(ValidationError):
        service.change_password(user, PASSWORD, PASSWORD)

    service.change_password(user, PASSWORD, "yenisifre")
    db.refresh(user)
    assert user.check_password("yenisifre")
