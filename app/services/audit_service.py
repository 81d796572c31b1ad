"""Write audit entries alongside workflow changes."""
from __future__ import annotations

from typing import Any, List, Optional

from app import db
from app.models import AuditLog


def record(
    entity_type: str,
    entity_id: int,
    action: str,
    actor_id: Optional[int] = None,
    company_id: Optional[int] = None,
    **details: Any,
) -> AuditLog:
    """Stage an audit entry in the current session; the caller commits."""
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        company_id=company_id,
        details=details or None,
    )
    db.session.add(entry)
    return entry


def entries_for(entity_type: str, entity_id: int) -> List[AuditLog]:
    return (
        AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.id.asc())
        .all()
    )
