import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from ..config.logging import get_logger, log_security_event
from ..config.settings import get_settings
from ..core.exceptions import UnauthorizedError
from ..core.security import SecurityEvent, create_access_token, create_refresh_token, verify_refresh_token
from ..models.user import RefreshSession, User
from ..repositories.user_repo import refresh_session_repo, user_repo

logger = get_logger(__name__)
settings = get_settings()

# (user, access token, refresh token)
TokenPair = Tuple[User, str, str]


def revoke_user_sessions(db: Session, user_id: int, now: datetime) -> int:
    """Revoke every open refresh session of a user; the caller commits."""
    sessions = refresh_session_repo.active_for_user(db, user_id)
    for session in sessions:
        session.revoke(now)
    return len(sessions)


class AuthService:
    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or datetime.now

    def authenticate_user(self, email: str, password: str, ip_address: Optional[str] = None) -> User:
        """Authenticate user with email and password"""
        email = (email or "").strip().lower()
        user = user_repo.get_by_email(self.db, email)

        if not user or not user.check_password(password):
            log_security_event(SecurityEvent.LOGIN_FAILURE, details=f"email={email}", ip_address=ip_address)
            raise UnauthorizedError("Invalid email or password")
        if not user.is_active:
            log_security_event(SecurityEvent.LOGIN_FAILURE, user_id=str(user.id), details="inactive account", ip_address=ip_address)
            raise UnauthorizedError("User account is disabled")

        user.record_login()
        return user

    def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> TokenPair:
        user = self.authenticate_user(email, password, ip_address=ip_address)
        try:
            access_token, refresh_token = self._issue_tokens(user, ip_address, user_agent)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log_security_event(SecurityEvent.LOGIN_SUCCESS, user_id=str(user.id), ip_address=ip_address)
        return user, access_token, refresh_token

    def refresh(
        self,
        refresh_token: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> TokenPair:
        """
        Exchange a refresh token for a new token pair. The presented session
        is revoked and replaced, so each refresh token works exactly once.
        """
        if not refresh_token:
            raise UnauthorizedError("Refresh token is missing")

        payload = verify_refresh_token(refresh_token)
        if not payload or not payload.get("sub") or not payload.get("jti"):
            self._reject("invalid or expired refresh token", ip_address)

        now = self.clock()
        session = refresh_session_repo.get_by_jti(self.db, str(payload["jti"]))
        if session is None or str(session.user_id) != str(payload["sub"]) or not session.is_usable(now):
            self._reject(f"refresh session {payload['jti']} is not usable", ip_address)

        user = user_repo.get(self.db, session.user_id)
        if user is None or not user.is_active:
            self._reject(f"user {session.user_id} is not active", ip_address)

        try:
            access_token, new_refresh_token = self._issue_tokens(user, ip_address, user_agent, replacing=session)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        log_security_event(SecurityEvent.TOKEN_REFRESHED, user_id=str(user.id), ip_address=ip_address)
        return user, access_token, new_refresh_token

    def logout(self, refresh_token: Optional[str]) -> bool:
        """Revoke the session behind a refresh token. Unknown tokens are ignored."""
        payload = verify_refresh_token(refresh_token) if refresh_token else None
        if not payload or not payload.get("jti"):
            return False

        session = refresh_session_repo.get_by_jti(self.db, str(payload["jti"]))
        if session is None or session.revoked_at is not None:
            return False
        session.revoke(self.clock())
        self.db.commit()
        logger.info(f"Refresh session {session.jti} revoked for user {session.user_id}")
        return True

    def _issue_tokens(
        self,
        user: User,
        ip_address: Optional[str],
        user_agent: Optional[str],
        replacing: Optional[RefreshSession] = None
    ) -> Tuple[str, str]:
        now = self.clock()
        jti = uuid.uuid4().hex
        refresh_session_repo.add(self.db, RefreshSession(
            jti=jti,
            user_id=user.id,
            expires_at=now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            ip_address=ip_address,
            user_agent=(user_agent or "")[:1000] or None,
        ))
        if replacing is not None:
            replacing.revoke(now, replaced_by=jti)

        access_token = create_access_token(
            data={"sub": str(user.id), "role": user.role.value},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        refresh_token = create_refresh_token(data={"sub": str(user.id)}, jti=jti)
        return access_token, refresh_token

    @staticmethod
    def _reject(reason: str, ip_address: Optional[str]):
        log_security_event(SecurityEvent.REFRESH_REJECTED, details=reason, ip_address=ip_address)
        raise UnauthorizedError("Refresh token is invalid or expired")
