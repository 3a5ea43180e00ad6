"""
Placement Orchestrator - stand assignment entry points

Every state-changing placement request goes through one of the functions
below. Each one runs as a single unit of work on the session it is given:

1. Load the target layout/stand, taking the stand's write lock
2. Load the event (and its current reservation)
3. Resolve and validate the target window
4. Enforce the change-reason rule
5. Find conflicting reservations on the target stand
6. Reject, or displace them through the bump engine
7. Upsert the reservation
8. Sync the event's denormalized hangar/layout pointer
9. Append the audit record

Nothing is committed until every step has succeeded; any exception rolls
back the reservation, the event fields, all displaced events and all audit
rows together.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from hangarplan.database import atomic
from hangarplan.models.aircraft import Aircraft
from hangarplan.models.event_audit import EventAuditAction
from hangarplan.models.hangar import HangarLayout, HangarStand
from hangarplan.models.maintenance_event import EventStatus, MaintenanceEvent
from hangarplan.models.stand_reservation import StandReservation
from hangarplan.services import audit_recorder, bump_engine, conflict_checker, reservation_store
from hangarplan.services.audit_payloads import (
    BumpInfo,
    ReservationChange,
    ReservePayload,
    UnreservePayload,
    UpdatePayload,
    WindowSnapshot,
    diff_snapshots,
    snapshot_event,
    snapshot_reservation,
)
from hangarplan.services.planning_errors import (
    PlanningNotFoundError,
    PlanningValidationError,
    StandConflictError,
)
from hangarplan.utils.datetimes import iso_utc, to_naive_utc, utcnow

logger = logging.getLogger(__name__)

INITIAL_ASSIGNMENT_REASON = "Initial stand assignment"
UNASSIGN_REASON = "Stand reservation removed"

# Default listing horizon around "now" when the caller gives no range
LIST_LOOKBACK = timedelta(days=7)
LIST_LOOKAHEAD = timedelta(days=30)


# ============================================================================
# Result types
# ============================================================================


@dataclass
class PlacementResult:
    reservation: StandReservation
    bumped_event_ids: List[int] = field(default_factory=list)
    # True when the reservation window differs from the owning event's window
    window_diverges: bool = False


@dataclass
class ReservationRow:
    """A reservation joined with its stand and event summary, for timeline/map views."""

    reservation: StandReservation
    stand: HangarStand
    event: MaintenanceEvent
    tail_number: Optional[str]


# ============================================================================
# Shared steps
# ============================================================================


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    reason = reason.strip()
    return reason or None


def _load_event(session: Session, event_id: int) -> MaintenanceEvent:
    event = session.get(MaintenanceEvent, event_id, populate_existing=True)
    if event is None:
        raise PlanningNotFoundError("Event", event_id)
    return event


def _load_target(session: Session, layout_id: int, stand_id: int) -> Tuple[HangarLayout, HangarStand]:
    """
    Load the target layout and stand.

    Called first in every placement so two placements aimed at the same stand
    serialize: the second one reads the event, its reservation and the stand's
    conflicts only after the first has committed. On PostgreSQL different
    stands never block each other; SQLite has a single writer anyway.
    """
    layout = session.get(HangarLayout, layout_id)
    if layout is None:
        raise PlanningNotFoundError("Layout", layout_id)

    stand = reservation_store.lock_stand(session, stand_id)
    if stand is None:
        raise PlanningNotFoundError("Stand", stand_id)

    if stand.layout_id != layout.id:
        raise PlanningValidationError(f"Stand {stand.code} does not belong to layout {layout.code}")
    if not stand.is_active:
        raise PlanningValidationError(f"Stand {stand.code} is not active")

    return layout, stand


def _validate_window(start_at: datetime, end_at: datetime) -> None:
    if end_at <= start_at:
        raise PlanningValidationError("end_at must be after start_at")


def _placement_differs(
    existing: Optional[StandReservation],
    layout_id: int,
    stand_id: int,
    start_at: datetime,
    end_at: datetime,
) -> bool:
    if existing is None:
        return True
    return (
        existing.layout_id != layout_id
        or existing.stand_id != stand_id
        or existing.start_at != start_at
        or existing.end_at != end_at
    )


def _sync_event_pointer(session: Session, event: MaintenanceEvent, layout: HangarLayout) -> None:
    event.layout_id = layout.id
    event.hangar_id = layout.hangar_id
    event.updated_at = utcnow()
    session.add(event)


def _resolve_conflicts(
    session: Session,
    event: MaintenanceEvent,
    stand: HangarStand,
    start_at: datetime,
    end_at: datetime,
    bump_on_conflict: bool,
    bumped_event_id: Optional[int],
    actor: str,
    reason: Optional[str],
) -> List[int]:
    """Reject or displace whatever occupies the target stand. Returns displaced event ids."""
    conflicts = conflict_checker.find_conflicts(session, stand.id, start_at, end_at, exclude_event_id=event.id)
    if not conflicts:
        return []

    if not bump_on_conflict:
        raise StandConflictError(conflicts[0])

    to_bump, still_blocking = conflict_checker.select_conflicts_to_bump(conflicts, bumped_event_id)
    if still_blocking:
        blocking = still_blocking[0]
        raise StandConflictError(
            blocking,
            message=f"Stand is also taken by {blocking.display_label}; only event {bumped_event_id} may be displaced",
        )

    return bump_engine.bump(session, to_bump, actor=actor, reason=reason, displaced_by_event_id=event.id)


# ============================================================================
# Entry points
# ============================================================================


def assign_reservation(
    session: Session,
    event_id: int,
    layout_id: int,
    stand_id: int,
    actor: str,
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
    change_reason: Optional[str] = None,
) -> PlacementResult:
    """
    Create or replace the reservation for an event. Never displaces anyone.

    The window defaults to the event's own window. An explicit window may
    differ from the event's; the result flags that with window_diverges and
    the audit payload carries the event window alongside.

    Raises:
        PlanningNotFoundError: event, layout or stand missing
        PlanningValidationError: inverted window, stand outside layout, missing reason
        StandConflictError: another active event holds the stand in that window
    """
    reason = _clean_reason(change_reason)

    with atomic(session, f"Assign reservation for event {event_id}"):
        layout, stand = _load_target(session, layout_id, stand_id)
        event = _load_event(session, event_id)
        existing = reservation_store.get_by_event(session, event.id)

        window_start = to_naive_utc(start_at) or event.start_at
        window_end = to_naive_utc(end_at) or event.end_at
        _validate_window(window_start, window_end)

        changed = _placement_differs(existing, layout.id, stand.id, window_start, window_end)
        if existing is not None and changed and reason is None:
            raise PlanningValidationError("change_reason is required when changing a reservation")

        conflicts = conflict_checker.find_conflicts(
            session, stand.id, window_start, window_end, exclude_event_id=event.id
        )
        if conflicts:
            raise StandConflictError(conflicts[0])

        before = snapshot_reservation(existing)
        reservation = reservation_store.upsert(session, event.id, layout.id, stand.id, window_start, window_end)
        _sync_event_pointer(session, event, layout)

        diverges = (window_start, window_end) != (event.start_at, event.end_at)
        audit_recorder.record(
            session,
            event_id=event.id,
            action=EventAuditAction.RESERVE,
            actor=actor,
            reason=reason or (None if existing else INITIAL_ASSIGNMENT_REASON),
            changes=ReservePayload(
                reservation=ReservationChange(from_=before, to=snapshot_reservation(reservation)),
                event_window=(
                    WindowSnapshot(start_at=iso_utc(event.start_at), end_at=iso_utc(event.end_at))
                    if diverges
                    else None
                ),
            ),
        )

    session.refresh(reservation)
    if diverges:
        logger.warning(
            f"Reservation {reservation.id} window differs from event {event_id} window "
            f"({iso_utc(window_start)}..{iso_utc(window_end)})"
        )
    logger.info(f"Event {event_id} reserved on stand {stand_id} (layout {layout_id}) by {actor}")
    return PlacementResult(reservation=reservation, window_diverges=diverges)


def _drag_and_drop(
    session: Session,
    label: str,
    event_id: int,
    layout_id: int,
    stand_id: int,
    actor: str,
    bump_on_conflict: bool,
    bumped_event_id: Optional[int],
    change_reason: Optional[str],
    new_window: Optional[Tuple[datetime, datetime]],
) -> PlacementResult:
    reason = _clean_reason(change_reason)

    if bumped_event_id is not None and bumped_event_id == event_id:
        raise PlanningValidationError("An event cannot displace itself")

    with atomic(session, f"{label} for event {event_id}"):
        layout, stand = _load_target(session, layout_id, stand_id)
        event = _load_event(session, event_id)
        existing = reservation_store.get_by_event(session, event.id)

        if new_window is not None:
            window_start, window_end = new_window
            _validate_window(window_start, window_end)
        else:
            window_start, window_end = event.start_at, event.end_at

        window_changed = (window_start, window_end) != (event.start_at, event.end_at)
        changed = window_changed or _placement_differs(existing, layout.id, stand.id, window_start, window_end)
        if changed and reason is None:
            raise PlanningValidationError("change_reason is required when moving an event")

        before_placement = snapshot_reservation(existing)
        before_event = snapshot_event(event)

        bumped = _resolve_conflicts(
            session,
            event,
            stand,
            window_start,
            window_end,
            bump_on_conflict=bump_on_conflict,
            bumped_event_id=bumped_event_id,
            actor=actor,
            reason=reason,
        )

        if window_changed:
            event.start_at = window_start
            event.end_at = window_end

        reservation = reservation_store.upsert(session, event.id, layout.id, stand.id, window_start, window_end)
        _sync_event_pointer(session, event, layout)
        session.flush()

        placement = ReservationChange(from_=before_placement, to=snapshot_reservation(reservation))
        bump_info = BumpInfo(requested=bump_on_conflict, displaced_event_ids=bumped)

        if new_window is not None:
            audit_recorder.record(
                session,
                event_id=event.id,
                action=EventAuditAction.UPDATE,
                actor=actor,
                reason=reason,
                changes=UpdatePayload(
                    fields=diff_snapshots(before_event, snapshot_event(event)),
                    reservation=placement,
                    bump=bump_info,
                ),
            )
        else:
            audit_recorder.record(
                session,
                event_id=event.id,
                action=EventAuditAction.RESERVE,
                actor=actor,
                reason=reason,
                changes=ReservePayload(reservation=placement, bump=bump_info),
            )

    session.refresh(reservation)
    logger.info(
        f"{label}: event {event_id} -> stand {stand_id} (layout {layout_id}) by {actor}, displaced={bumped}"
    )
    return PlacementResult(reservation=reservation, bumped_event_ids=bumped)


def dnd_move(
    session: Session,
    event_id: int,
    layout_id: int,
    stand_id: int,
    actor: str,
    bump_on_conflict: bool = False,
    bumped_event_id: Optional[int] = None,
    change_reason: Optional[str] = None,
) -> PlacementResult:
    """
    Drag-and-drop move onto another stand, keeping the event's time window.

    The reservation window is reset to the event window. With
    bump_on_conflict, overlapping events are displaced first: all of them, or
    only `bumped_event_id` when given (any other overlap still fails).
    """
    return _drag_and_drop(
        session,
        "dnd-move",
        event_id,
        layout_id,
        stand_id,
        actor=actor,
        bump_on_conflict=bump_on_conflict,
        bumped_event_id=bumped_event_id,
        change_reason=change_reason,
        new_window=None,
    )


def dnd_place(
    session: Session,
    event_id: int,
    layout_id: int,
    stand_id: int,
    start_at: datetime,
    end_at: datetime,
    actor: str,
    bump_on_conflict: bool = False,
    bumped_event_id: Optional[int] = None,
    change_reason: Optional[str] = None,
) -> PlacementResult:
    """Drag-and-drop move that also re-times the event; conflicts use the new window."""
    return _drag_and_drop(
        session,
        "dnd-place",
        event_id,
        layout_id,
        stand_id,
        actor=actor,
        bump_on_conflict=bump_on_conflict,
        bumped_event_id=bumped_event_id,
        change_reason=change_reason,
        new_window=(to_naive_utc(start_at), to_naive_utc(end_at)),
    )


def unassign_reservation(
    session: Session,
    event_id: int,
    actor: str,
    change_reason: Optional[str] = None,
) -> int:
    """
    Remove an event's reservation. Idempotent.

    Unlike a bump, a planner's unassign keeps the event's hangar_id and its
    status; only layout_id is cleared. A displaced event loses both pointers
    and drops to DRAFT.

    Returns the number of reservations deleted: 0 when there was nothing to
    remove (no audit row written), 1 otherwise.
    """
    with atomic(session, f"Unassign reservation for event {event_id}"):
        existing = reservation_store.get_by_event(session, event_id)
        if existing is None:
            return 0

        before = snapshot_reservation(existing)
        deleted = reservation_store.delete_by_event(session, event_id)

        event = session.get(MaintenanceEvent, event_id)
        if event is not None:
            # The hangar stays meaningful without a stand; the layout does not
            event.layout_id = None
            event.updated_at = utcnow()
            session.add(event)

        audit_recorder.record(
            session,
            event_id=event_id,
            action=EventAuditAction.UNRESERVE,
            actor=actor,
            reason=_clean_reason(change_reason) or UNASSIGN_REASON,
            changes=UnreservePayload(reservation=ReservationChange(from_=before, to=None)),
        )

    logger.info(f"Reservation for event {event_id} removed by {actor}")
    return deleted


# ============================================================================
# Reads
# ============================================================================


def list_reservations(
    session: Session,
    layout_id: int,
    from_at: Optional[datetime] = None,
    to_at: Optional[datetime] = None,
) -> List[ReservationRow]:
    """Active reservations on a layout overlapping [from_at, to_at), ordered by start."""
    now = utcnow()
    range_start = to_naive_utc(from_at) or now - LIST_LOOKBACK
    range_end = to_naive_utc(to_at) or now + LIST_LOOKAHEAD

    rows = session.exec(
        select(StandReservation, HangarStand, MaintenanceEvent, Aircraft)
        .join(HangarStand, StandReservation.stand_id == HangarStand.id)
        .join(MaintenanceEvent, StandReservation.event_id == MaintenanceEvent.id)
        .join(Aircraft, MaintenanceEvent.aircraft_id == Aircraft.id, isouter=True)
        .where(
            StandReservation.layout_id == layout_id,
            StandReservation.start_at < range_end,
            StandReservation.end_at > range_start,
            MaintenanceEvent.status != EventStatus.CANCELLED.value,
        )
        .order_by(StandReservation.start_at, StandReservation.id)
    ).all()

    return [
        ReservationRow(
            reservation=reservation,
            stand=stand,
            event=event,
            tail_number=aircraft.tail_number if aircraft else None,
        )
        for reservation, stand, event, aircraft in rows
    ]
