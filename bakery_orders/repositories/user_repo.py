from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from .base import CRUDBase
from ..models.user import RefreshSession, User


class UserRepository(CRUDBase[User]):
    def __init__(self):
        super().__init__(User)

    def get_with_links(self, db: Session, user_id: int) -> Optional[User]:
        """User with branch and center loaded"""
        return (
            db.query(User)
            .options(joinedload(User.branch), joinedload(User.center))
            .filter(User.id == user_id)
            .first()
        )

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email).first()

    def get_by_phone(self, db: Session, phone: str) -> Optional[User]:
        return db.query(User).filter(User.phone == phone).first()

    def list_all(self, db: Session) -> List[User]:
        return (
            db.query(User)
            .options(joinedload(User.branch), joinedload(User.center))
            .order_by(User.created_at.asc(), User.id.asc())
            .all()
        )


class RefreshSessionRepository(CRUDBase[RefreshSession]):
    def __init__(self):
        super().__init__(RefreshSession)

    def get_by_jti(self, db: Session, jti: str) -> Optional[RefreshSession]:
        return db.query(RefreshSession).filter(RefreshSession.jti == jti).first()

    def active_for_user(self, db: Session, user_id: int) -> List[RefreshSession]:
        return (
            db.query(RefreshSession)
            .filter(RefreshSession.user_id == user_id, RefreshSession.revoked_at.is_(None))
            .all()
        )


user_repo = UserRepository()
refresh_session_repo = RefreshSessionRepository()
