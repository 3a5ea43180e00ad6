"""
Maintenance event lifecycle: create, edit, delete, list.

Edits that touch the time window of a placed event move its reservation
with it and are conflict-checked on the reserved stand. The hangar/layout
pointer of a placed event belongs to its reservation and cannot be edited
here; use the placement orchestrator instead.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from hangarplan.database import atomic
from hangarplan.models.aircraft import Aircraft
from hangarplan.models.event_audit import EventAuditAction, MaintenanceEventAudit
from hangarplan.models.hangar import Hangar, HangarLayout
from hangarplan.models.maintenance_event import EventStatus, MaintenanceEvent, PlanningLevel
from hangarplan.models.stand_reservation import StandReservation
from hangarplan.services import audit_recorder, conflict_checker, reservation_store
from hangarplan.services.audit_payloads import (
    CreatedPayload,
    ReservationChange,
    UpdatePayload,
    diff_snapshots,
    plain_value,
    snapshot_event,
    snapshot_reservation,
)
from hangarplan.services.planning_errors import (
    PlanningNotFoundError,
    PlanningValidationError,
    StandConflictError,
)
from hangarplan.utils.datetimes import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

EVENT_CREATED_REASON = "Event created"

EDITABLE_FIELDS = (
    "level",
    "status",
    "title",
    "aircraft_id",
    "start_at",
    "end_at",
    "hangar_id",
    "layout_id",
    "notes",
)

LIST_LOOKBACK = timedelta(days=30)
LIST_LOOKAHEAD = timedelta(days=180)


def get_event(session: Session, event_id: int) -> MaintenanceEvent:
    event = session.get(MaintenanceEvent, event_id)
    if event is None:
        raise PlanningNotFoundError("Event", event_id)
    return event


def list_events(
    session: Session,
    from_at: Optional[datetime] = None,
    to_at: Optional[datetime] = None,
    hangar_id: Optional[int] = None,
    layout_id: Optional[int] = None,
    aircraft_id: Optional[int] = None,
    level: Optional[PlanningLevel] = None,
) -> List[MaintenanceEvent]:
    """Events whose [start_at, end_at) overlaps the requested range, ordered by start."""
    now = utcnow()
    range_start = to_naive_utc(from_at) or now - LIST_LOOKBACK
    range_end = to_naive_utc(to_at) or now + LIST_LOOKAHEAD

    query = select(MaintenanceEvent).where(
        MaintenanceEvent.start_at < range_end,
        MaintenanceEvent.end_at > range_start,
    )
    if hangar_id is not None:
        query = query.where(MaintenanceEvent.hangar_id == hangar_id)
    if layout_id is not None:
        query = query.where(MaintenanceEvent.layout_id == layout_id)
    if aircraft_id is not None:
        query = query.where(MaintenanceEvent.aircraft_id == aircraft_id)
    if level is not None:
        query = query.where(MaintenanceEvent.level == PlanningLevel(level).value)

    return list(session.exec(query.order_by(MaintenanceEvent.start_at, MaintenanceEvent.id)).all())


def _resolve_hangar_pointer(
    session: Session, hangar_id: Optional[int], layout_id: Optional[int]
) -> Optional[int]:
    """Validate an unplaced event's hangar/layout pointer; returns the effective hangar id."""
    if layout_id is not None:
        layout = session.get(HangarLayout, layout_id)
        if layout is None:
            raise PlanningNotFoundError("Layout", layout_id)
        if hangar_id is not None and hangar_id != layout.hangar_id:
            raise PlanningValidationError(f"Layout {layout.code} does not belong to hangar {hangar_id}")
        return layout.hangar_id
    if hangar_id is not None and session.get(Hangar, hangar_id) is None:
        raise PlanningNotFoundError("Hangar", hangar_id)
    return hangar_id


def create_event(
    session: Session,
    level: PlanningLevel,
    title: str,
    aircraft_id: int,
    start_at: datetime,
    end_at: datetime,
    actor: str,
    status: Optional[EventStatus] = None,
    hangar_id: Optional[int] = None,
    layout_id: Optional[int] = None,
    notes: Optional[str] = None,
    change_reason: Optional[str] = None,
) -> MaintenanceEvent:
    start_at = to_naive_utc(start_at)
    end_at = to_naive_utc(end_at)
    if end_at <= start_at:
        raise PlanningValidationError("end_at must be after start_at")

    with atomic(session, "Create event"):
        if session.get(Aircraft, aircraft_id) is None:
            raise PlanningNotFoundError("Aircraft", aircraft_id)
        hangar_id = _resolve_hangar_pointer(session, hangar_id, layout_id)

        event = MaintenanceEvent(
            level=PlanningLevel(level).value,
            status=EventStatus(status or EventStatus.PLANNED).value,
            title=title,
            aircraft_id=aircraft_id,
            start_at=start_at,
            end_at=end_at,
            hangar_id=hangar_id,
            layout_id=layout_id,
            notes=notes,
        )
        session.add(event)
        session.flush()

        audit_recorder.record(
            session,
            event_id=event.id,
            action=EventAuditAction.CREATE,
            actor=actor,
            reason=(change_reason or "").strip() or EVENT_CREATED_REASON,
            changes=CreatedPayload(created=snapshot_event(event)),
        )

    session.refresh(event)
    logger.info(f"Event {event.id} '{event.title}' created by {actor}")
    return event


def _plain_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - set(EDITABLE_FIELDS)
    if unknown:
        raise PlanningValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
    cleaned = dict(patch)
    for name in ("title", "level", "status", "aircraft_id", "start_at", "end_at"):
        if name in cleaned and cleaned[name] is None:
            raise PlanningValidationError(f"{name} cannot be empty")
    for name in ("start_at", "end_at"):
        if name in cleaned:
            cleaned[name] = to_naive_utc(cleaned[name])
    if "level" in cleaned:
        cleaned["level"] = PlanningLevel(cleaned["level"]).value
    if "status" in cleaned:
        cleaned["status"] = EventStatus(cleaned["status"]).value
    return cleaned


def _lock_placement(
    session: Session, event_id: int
) -> Tuple[MaintenanceEvent, Optional[StandReservation]]:
    """Load an event and its reservation while holding the reserved stand's write lock."""
    event = get_event(session, event_id)
    reservation = reservation_store.get_by_event(session, event.id)
    locked_stand_id = None
    while reservation is not None and reservation.stand_id != locked_stand_id:
        locked_stand_id = reservation.stand_id
        reservation_store.lock_stand(session, locked_stand_id)
        event = session.get(MaintenanceEvent, event_id, populate_existing=True)
        if event is None:
            raise PlanningNotFoundError("Event", event_id)
        reservation = reservation_store.get_by_event(session, event.id)
    return event, reservation


def update_event(
    session: Session,
    event_id: int,
    patch: Dict[str, Any],
    actor: str,
    change_reason: Optional[str] = None,
) -> MaintenanceEvent:
    """
    Apply a partial update to an event.

    Raises:
        PlanningNotFoundError: event (or referenced aircraft/layout/hangar) missing
        PlanningValidationError: inverted window, placement edited directly, missing reason
        StandConflictError: the new window collides on the event's reserved stand
    """
    reason = (change_reason or "").strip() or None
    patch = _plain_patch(patch)

    with atomic(session, f"Update event {event_id}"):
        event, reservation = _lock_placement(session, event_id)

        next_start = patch.get("start_at", event.start_at)
        next_end = patch.get("end_at", event.end_at)
        if next_end <= next_start:
            raise PlanningValidationError("end_at must be after start_at")

        if "aircraft_id" in patch and session.get(Aircraft, patch["aircraft_id"]) is None:
            raise PlanningNotFoundError("Aircraft", patch["aircraft_id"])

        pointer_fields = {k: patch[k] for k in ("hangar_id", "layout_id") if k in patch}
        if pointer_fields:
            if reservation is not None:
                if any(getattr(event, k) != v for k, v in pointer_fields.items()):
                    raise PlanningValidationError(
                        "Event is placed on a stand; change its hangar/layout through the reservation"
                    )
            else:
                next_layout = pointer_fields.get("layout_id", event.layout_id)
                next_hangar = pointer_fields.get("hangar_id", None if "layout_id" in pointer_fields else event.hangar_id)
                patch["hangar_id"] = _resolve_hangar_pointer(session, next_hangar, next_layout)

        before = snapshot_event(event)
        after = {**before, **{name: plain_value(value) for name, value in patch.items()}}
        changes = diff_snapshots(before, after)

        if not changes:
            return event
        if reason is None:
            raise PlanningValidationError("change_reason is required when updating an event")

        window_changed = (next_start, next_end) != (event.start_at, event.end_at)
        next_status = patch.get("status", event.status)
        placement_change = None

        if reservation is not None and next_status != EventStatus.CANCELLED.value:
            window_start = next_start if window_changed else reservation.start_at
            window_end = next_end if window_changed else reservation.end_at
            conflicts = conflict_checker.find_conflicts(
                session, reservation.stand_id, window_start, window_end, exclude_event_id=event.id
            )
            if conflicts:
                raise StandConflictError(
                    conflicts[0], message=f"Stand is taken in that period: {conflicts[0].display_label}"
                )

        if reservation is not None and window_changed:
            previous = snapshot_reservation(reservation)
            reservation = reservation_store.upsert(
                session, event.id, reservation.layout_id, reservation.stand_id, next_start, next_end
            )
            placement_change = ReservationChange(from_=previous, to=snapshot_reservation(reservation))

        for name, value in patch.items():
            setattr(event, name, value)
        event.updated_at = utcnow()
        session.add(event)
        session.flush()

        audit_recorder.record(
            session,
            event_id=event.id,
            action=EventAuditAction.UPDATE,
            actor=actor,
            reason=reason,
            changes=UpdatePayload(fields=changes, reservation=placement_change),
        )

    session.refresh(event)
    logger.info(f"Event {event_id} updated by {actor}: {', '.join(sorted(changes))}")
    return event


def delete_event(session: Session, event_id: int) -> None:
    """Delete an event together with its reservation and audit history."""
    with atomic(session, f"Delete event {event_id}"):
        event = get_event(session, event_id)
        reservation_store.delete_by_event(session, event.id)
        for entry in session.exec(
            select(MaintenanceEventAudit).where(MaintenanceEventAudit.event_id == event.id)
        ).all():
            session.delete(entry)
        session.flush()
        session.delete(event)

    logger.info(f"Event {event_id} deleted")
