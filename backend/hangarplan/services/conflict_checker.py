"""
Interval conflict checker for stand reservations.

A reservation blocks a requested window on the same stand when:
- its owning event is not CANCELLED
- it does not belong to the excluded event
- the half-open windows overlap: existing.start_at < end AND existing.end_at > start

Touching windows (existing.end_at == start) do not conflict.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from hangarplan.models.aircraft import Aircraft
from hangarplan.models.maintenance_event import EventStatus, MaintenanceEvent
from hangarplan.models.stand_reservation import StandReservation


@dataclass(frozen=True)
class ReservationConflict:
    """A blocking reservation plus the display fields of its owning event."""

    reservation_id: int
    event_id: int
    layout_id: int
    stand_id: int
    start_at: datetime
    end_at: datetime
    event_title: str
    event_status: str
    tail_number: Optional[str]

    @property
    def display_label(self) -> str:
        if self.tail_number:
            return f"{self.event_title} ({self.tail_number})"
        return self.event_title


def find_conflicts(
    session: Session,
    stand_id: int,
    window_start: datetime,
    window_end: datetime,
    exclude_event_id: Optional[int] = None,
) -> List[ReservationConflict]:
    """
    Return every active reservation on `stand_id` overlapping [window_start, window_end).

    Results are ordered by start time so the first element is the earliest
    blocker. Callers validate window_end > window_start before calling.
    """
    query = (
        select(StandReservation, MaintenanceEvent, Aircraft)
        .join(MaintenanceEvent, StandReservation.event_id == MaintenanceEvent.id)
        .join(Aircraft, MaintenanceEvent.aircraft_id == Aircraft.id, isouter=True)
        .where(
            StandReservation.stand_id == stand_id,
            StandReservation.start_at < window_end,
            StandReservation.end_at > window_start,
            MaintenanceEvent.status != EventStatus.CANCELLED.value,
        )
        .order_by(StandReservation.start_at, StandReservation.id)
    )
    if exclude_event_id is not None:
        query = query.where(StandReservation.event_id != exclude_event_id)

    conflicts = []
    for reservation, event, aircraft in session.exec(query).all():
        conflicts.append(
            ReservationConflict(
                reservation_id=reservation.id,
                event_id=event.id,
                layout_id=reservation.layout_id,
                stand_id=reservation.stand_id,
                start_at=reservation.start_at,
                end_at=reservation.end_at,
                event_title=event.title,
                event_status=event.status,
                tail_number=aircraft.tail_number if aircraft else None,
            )
        )
    return conflicts


def select_conflicts_to_bump(
    conflicts: List[ReservationConflict], bumped_event_id: Optional[int] = None
) -> tuple[List[ReservationConflict], List[ReservationConflict]]:
    """
    Split conflicts into (to_bump, still_blocking).

    With no `bumped_event_id` every conflict is displaced. With one, only that
    event is displaced and the rest keep blocking the placement.
    """
    if bumped_event_id is None:
        return list(conflicts), []
    to_bump = [c for c in conflicts if c.event_id == bumped_event_id]
    still_blocking = [c for c in conflicts if c.event_id != bumped_event_id]
    return to_bump, still_blocking
