from datetime import timedelta

import jwt

from bakery_orders.config.settings import get_settings
from bakery_orders.core.security import (
    create_access_token,
    create_refresh_token,
    get_user_id_from_token,
    verify_refresh_token,
    verify_token,
)
from bakery_orders.models import User, UserRole

settings = get_settings()


def test_password_hashing_round_trip():
    user = User(email="yeni@example.com", role=UserRole.BRANCH)
    user.set_password("tereyagli")

    assert user.password_hash != "tereyagli"
    assert user.check_password("tereyagli")
    assert not user.check_password("margarinli")


def test_access_token_carries_subject_and_type():
    token = create_access_token({"sub": "12", "role": "merkez"})

    payload = verify_token(token)
    assert payload["sub"] == "12"
    assert payload["role"] == "merkez"
    assert payload["type"] == "access"
    assert get_user_id_from_token(token) == "12"


def test_expired_and_tampered_tokens_are_rejected():
    expired = create_access_token({"sub": "12"}, expires_delta=timedelta(seconds=-5))
    assert verify_token(expired) is None

    forged = jwt.encode({"sub": "12", "type": "access"}, "not-the-secret", algorithm=settings.JWT_ALGORITHM)
    assert get_user_id_from_token(forged) is None


def test_non_access_tokens_do_not_authenticate():
    token = jwt.encode({"sub": "12", "type": "refresh"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    assert get_user_id_from_token(token) is None


def test_refresh_token_carries_session_id():
    token = create_refresh_token({"sub": "12"}, jti="abc123")

    payload = verify_refresh_token(token)
    assert payload["sub"] == "12"
    assert payload["jti"] == "abc123"
    assert get_user_id_from_token(token) is None


def test_access_token_is_not_a_refresh_token():
    assert verify_refresh_token(create_access_token({"sub": "12"})) is None
    assert verify_refresh_token("not-a-token") is None
