from __future__ import annotations

from sqlalchemy.orm import Session

from slotforge.models.activity_log import ActivityLog


def log_activity(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> None:
    record = ActivityLog(
        tenant_id=tenant_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
