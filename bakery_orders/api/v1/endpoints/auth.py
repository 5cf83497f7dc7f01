# api/v1/endpoints/auth.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ....config.database import get_db
from ....config.settings import get_settings
from ....core.dependencies import get_current_user
from ....core.rate_limit import check_rate_limit, client_identifier, login_key, rate_limit
from ....models.user import User
from ....schemas.auth import LoginRequest, RefreshRequest, TokenResponse, UserResponse
from ....services.auth_service import AuthService

router = APIRouter()
settings = get_settings()


def _set_auth_cookies(response: Response, access_token: str, refresh_token: str):
    response.set_cookie(
        key=settings.ACCESS_TOKEN_COOKIE_NAME,
        value=access_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key=settings.REFRESH_TOKEN_COOKIE_NAME,
        value=refresh_token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400,
    )


def _clear_auth_cookies(response: Response):
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE_NAME)
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE_NAME)


def _presented_refresh_token(request: Request, body: Optional[RefreshRequest]) -> Optional[str]:
    if body is not None and body.refresh_token:
        return body.refresh_token
    return request.cookies.get(settings.REFRESH_TOKEN_COOKIE_NAME)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Authenticate with email and password. Tokens are returned in the body and
    also set as HTTP-only cookies. Attempts are limited per address and
    account, so rotating either one alone does not reset the budget.
    """
    ip_address = client_identifier(request)
    check_rate_limit(
        "login",
        login_key(request, credentials.email),
        settings.LOGIN_RATE_LIMIT_MAX,
        settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
        ip_address=ip_address,
    )

    user, access_token, refresh_token = AuthService(db).login(
        credentials.email,
        credentials.password,
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
    )
    _set_auth_cookies(response, access_token, refresh_token)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limit("refresh", max_requests=30, window_seconds=300))]
)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    db: Session = Depends(get_db)
):
    """Rotate a refresh token; the presented one stops working."""
    user, access_token, refresh_token = AuthService(db).refresh(
        _presented_refresh_token(request, body),
        ip_address=client_identifier(request),
        user_agent=request.headers.get("user-agent"),
    )

    _set_auth_cookies(response, access_token, refresh_token)
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/logout",
    dependencies=[Depends(rate_limit("logout", max_requests=60, window_seconds=300))]
)
async def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    db: Session = Depends(get_db)
):
    AuthService(db).logout(_presented_refresh_token(request, body))
    _clear_auth_cookies(response)
    return {"ok": True}


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return UserResponse.model_validate(current_user)
