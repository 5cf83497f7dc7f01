from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..config.logging import get_logger
from ..models.audit import AuditLog

logger = get_logger(__name__)


def record_audit(
    db: Session,
    actor_user_id: Optional[int],
    action: str,
    entity: str,
    entity_id: Any = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction; it commits with the change it describes."""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        before=before,
        after=after,
    )
    db.add(entry)
    logger.debug(f"Audit {action} {entity}:{entity_id} by user {actor_user_id}")
    return entry
