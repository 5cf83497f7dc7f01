from datetime import datetime, timedelta

import pytest

from bakery_orders.core.exceptions import UnauthorizedError
from bakery_orders.core.security import verify_refresh_token
from bakery_orders.models import RefreshSession
from bakery_orders.services.auth_service import AuthService, revoke_user_sessions
from conftest import PASSWORD


def test_login_opens_refresh_session(db, seed):
    user, access_token, refresh_token = AuthService(db).login(
        " Kadikoy@Example.com ", PASSWORD, ip_address="10.0.0.1", user_agent="pytest"
    )

    assert user.id == seed["users"]["kadikoy"].id
    assert user.last_login is not None
    assert access_token != refresh_token
    session = db.query(RefreshSession).one()
    assert session.jti == verify_refresh_token(refresh_token)["jti"]
    assert session.ip_address == "10.0.0.1"
    assert session.revoked_at is None


def test_login_rejects_wrong_password_and_inactive_user(db, seed):
    service = AuthService(db)
    with pytest.raises(UnauthorizedError) as excinfo:
        service.login("kadikoy@example.com", "wrong")
    assert excinfo.value.detail == "Invalid email or password"

    seed["users"]["besiktas"].is_active = False
    db.commit()
    with pytest.raises(UnauthorizedError):
        service.login("besiktas@example.com", PASSWORD)
    assert db.query(RefreshSession).count() == 0


def test_refresh_rotates_session(db, seed):
    service = AuthService(db)
    _, _, first = service.login("kadikoy@example.com", PASSWORD)

    user, _, second = service.refresh(first)

    assert user.id == seed["users"]["kadikoy"].id
    old = db.query(RefreshSession).filter(RefreshSession.jti == verify_refresh_token(first)["jti"]).one()
    assert old.revoked_at is not None
    assert old.replaced_by_jti == verify_refresh_token(second)["jti"]

    with pytest.raises(UnauthorizedError):
        service.refresh(first)
    service.refresh(second)


def test_refresh_rejects_missing_and_access_tokens(db, seed):
    service = AuthService(db)
    _, access_token, _ = service.login("kadikoy@example.com", PASSWORD)

    with pytest.raises(UnauthorizedError) as excinfo:
        service.refresh(None)
    assert excinfo.value.detail == "Refresh token is missing"

    with pytest.raises(UnauthorizedError) as excinfo:
        service.refresh(access_token)
    assert excinfo.value.detail == "Refresh token is invalid or expired"


def test_refresh_rejects_expired_session(db, seed):
    _, _, refresh_token = AuthService(db).login("kadikoy@example.com", PASSWORD)

    later = AuthService(db, clock=lambda: datetime.now() + timedelta(days=8))
    with pytest.raises(UnauthorizedError):
        later.refresh(refresh_token)


def test_refresh_rejects_deactivated_user(db, seed):
    service = AuthService(db)
    _, _, refresh_token = service.login("kadikoy@example.com", PASSWORD)

    seed["users"]["kadikoy"].is_active = False
    db.commit()

    with pytest.raises(UnauthorizedError):
        service.refresh(refresh_token)


def test_logout_revokes_session(db, seed):
    service = AuthService(db)
    _, _, refresh_token = service.login("kadikoy@example.com", PASSWORD)

    assert service.logout(refresh_token) is True
    assert service.logout(refresh_token) is False
    assert service.logout("garbage") is False
    assert service.logout(None) is False

    with pytest.raises(UnauthorizedError):
        service.refresh(refresh_token)


def test_revoke_user_sessions(db, seed):
    service = AuthService(db)
    service.login("kadikoy@example.com", PASSWORD)
    service.login("kadikoy@example.com", PASSWORD)
    service.login("besiktas@example.com", PASSWORD)

    assert revoke_user_sessions(db, seed["users"]["kadikoy"].id, datetime.now()) == 2
    db.commit()

    open_sessions = db.query(RefreshSession).filter(RefreshSession.revoked_at.is_(None)).all()
    assert [s.user_id for s in open_sessions] == [seed["users"]["besiktas"].id]
