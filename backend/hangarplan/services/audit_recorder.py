"""
Audit recorder: append-only history of event mutations.

record() only ever inserts. There is no update or delete path here; audit
rows disappear only when their event is deleted outright.
"""

import logging
from typing import List, Optional

from sqlmodel import Session, col, select

from hangarplan.models.event_audit import EventAuditAction, MaintenanceEventAudit
from hangarplan.services.audit_payloads import ALLOWED_KINDS, AuditPayload, audit_payload_adapter

logger = logging.getLogger(__name__)

MAX_ACTOR_LENGTH = 80


def record(
    session: Session,
    event_id: int,
    action: EventAuditAction,
    actor: str,
    reason: Optional[str],
    changes: AuditPayload,
) -> MaintenanceEventAudit:
    """Append one audit row. Flushes, does not commit."""
    if changes.kind not in ALLOWED_KINDS[action]:
        raise ValueError(f"Audit payload '{changes.kind}' is not valid for action {action.value}")

    entry = MaintenanceEventAudit(
        event_id=event_id,
        action=action.value,
        actor=(actor or "browser")[:MAX_ACTOR_LENGTH],
        reason=reason,
        changes=changes.model_dump(mode="json", by_alias=True),
    )
    session.add(entry)
    session.flush()
    logger.debug(f"Audit {action.value} recorded for event {event_id} by {entry.actor}")
    return entry


def history(session: Session, event_id: int) -> List[MaintenanceEventAudit]:
    """Audit rows for an event, newest first."""
    return list(
        session.exec(
            select(MaintenanceEventAudit)
            .where(MaintenanceEventAudit.event_id == event_id)
            .order_by(col(MaintenanceEventAudit.created_at).desc(), col(MaintenanceEventAudit.id).desc())
        ).all()
    )


def parse_changes(entry: MaintenanceEventAudit) -> Optional[AuditPayload]:
    """Rebuild the typed payload stored on an audit row."""
    if entry.changes is None:
        return None
    return audit_payload_adapter.validate_python(entry.changes)
