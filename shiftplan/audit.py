from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from shiftplan.models import AuditLog
from shiftplan.security import Actor

logger = logging.getLogger("shiftplan.audit")


def record_audit(
    db: Session,
    *,
    actor: Actor,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> AuditLog:
    """Stage an audit row on ``db``; it commits with the caller's unit of work."""
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_id=actor.user_id,
        actor_role=actor.role.value,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        success=success,
        details=details or {},
    )
    db.add(audit)
    return audit


def log_audit(
    db: Session,
    *,
    actor: Actor,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
    request_id: str | None = None,
) -> None:
    record_audit(
        db,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        success=success,
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_role": actor.role.value,
                "actor_id": actor.user_id,
                "success": success,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_role": actor.role.value,
            "actor_id": actor.user_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
            "details": details or {},
        },
    )
