"""
Audit trail of who changed what.
"""
from sqlalchemy import Column, Integer, String, ForeignKey, JSON

from .base import BaseModel, TimestampMixin


class AuditLog(BaseModel, TimestampMixin):
    __tablename__ = "audit_logs"

    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(120), nullable=False, index=True)
    entity = Column(String(120), nullable=False, index=True)
    entity_id = Column(String(64), nullable=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<AuditLog(action={self.action}, entity={self.entity}, entity_id={self.entity_id})>"
