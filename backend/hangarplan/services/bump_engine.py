"""
Displacement ("bump") engine.

Clears the placement of events standing in the way of another event's
placement request. A displaced event is not destroyed: it loses its
reservation and its hangar/layout pointer and drops back to DRAFT so a
planner can place it again.

The engine writes through the caller's session and never commits. It runs
inside the orchestrator's unit of work, so a failure anywhere in the
placement rolls every displacement back with it.
"""

import logging
from typing import List, Optional

from sqlmodel import Session

from hangarplan.models.event_audit import EventAuditAction
from hangarplan.models.maintenance_event import EventStatus, MaintenanceEvent
from hangarplan.services import audit_recorder, reservation_store
from hangarplan.services.audit_payloads import (
    BumpedPayload,
    ReservationChange,
    diff_snapshots,
    snapshot_event,
    snapshot_reservation,
)
from hangarplan.services.conflict_checker import ReservationConflict
from hangarplan.utils.datetimes import utcnow

logger = logging.getLogger(__name__)


def bump(
    session: Session,
    conflicts: List[ReservationConflict],
    actor: str,
    reason: Optional[str],
    displaced_by_event_id: int,
) -> List[int]:
    """
    Displace every event in `conflicts`.

    Per displaced event: delete its reservation, clear hangar_id/layout_id,
    force status DRAFT and append one UNRESERVE audit row (payload kind
    "bumped") naming `displaced_by_event_id`.

    Returns the displaced event ids in the order given.
    """
    displaced: List[int] = []
    for conflict in conflicts:
        if conflict.event_id in displaced:
            continue

        event = session.get(MaintenanceEvent, conflict.event_id)
        if event is None:
            # Conflict rows come from a join on the event; a missing event here
            # means the row vanished mid-transaction.
            raise RuntimeError(f"Displaced event {conflict.event_id} disappeared during placement")

        reservation = reservation_store.get_by_event(session, event.id)
        before_placement = snapshot_reservation(reservation)
        before_event = snapshot_event(event)

        reservation_store.delete_by_event(session, event.id)
        event.hangar_id = None
        event.layout_id = None
        event.status = EventStatus.DRAFT.value
        event.updated_at = utcnow()
        session.add(event)
        session.flush()

        audit_recorder.record(
            session,
            event_id=event.id,
            action=EventAuditAction.UNRESERVE,
            actor=actor,
            reason=reason or f"Displaced by event {displaced_by_event_id}",
            changes=BumpedPayload(
                reservation=ReservationChange(from_=before_placement, to=None),
                fields=diff_snapshots(before_event, snapshot_event(event)),
                displaced_by_event_id=displaced_by_event_id,
            ),
        )
        displaced.append(event.id)
        logger.info(
            f"Event {event.id} displaced from stand {conflict.stand_id} by event {displaced_by_event_id}"
        )

    return displaced
