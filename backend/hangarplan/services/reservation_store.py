"""
Reservation store: persistence for StandReservation rows, keyed by event.

At most one reservation exists per event (uq_reservation_event). upsert()
rewrites that row in place; it never creates a second one. Keeping the
event's hangar/layout pointer in sync is the caller's job.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from hangarplan.models.hangar import HangarStand
from hangarplan.models.stand_reservation import StandReservation
from hangarplan.utils.datetimes import utcnow


def get_by_event(session: Session, event_id: int) -> Optional[StandReservation]:
    return session.exec(
        select(StandReservation)
        .where(StandReservation.event_id == event_id)
        .execution_options(populate_existing=True)
    ).first()


def upsert(
    session: Session,
    event_id: int,
    layout_id: int,
    stand_id: int,
    start_at: datetime,
    end_at: datetime,
) -> StandReservation:
    """Create or replace the reservation for `event_id`. Flushes, does not commit."""
    reservation = get_by_event(session, event_id)
    if reservation is None:
        reservation = StandReservation(
            event_id=event_id,
            layout_id=layout_id,
            stand_id=stand_id,
            start_at=start_at,
            end_at=end_at,
        )
    else:
        reservation.layout_id = layout_id
        reservation.stand_id = stand_id
        reservation.start_at = start_at
        reservation.end_at = end_at
        reservation.updated_at = utcnow()

    session.add(reservation)
    session.flush()
    return reservation


def delete_by_event(session: Session, event_id: int) -> int:
    """Delete the reservation for `event_id`. Returns rows removed (0 or 1); never fails on absence."""
    reservation = get_by_event(session, event_id)
    if reservation is None:
        return 0
    session.delete(reservation)
    session.flush()
    return 1


def lock_stand(session: Session, stand_id: int) -> Optional[HangarStand]:
    """
    Take the write lock that serializes placements on one stand.

    The no-op UPDATE makes SQLite open its write transaction here, so a second
    writer waits before it can run its conflict read. Other backends also get
    a row lock through FOR UPDATE. Returns None when the stand does not exist.
    """
    session.connection().execute(
        update(HangarStand).where(HangarStand.id == stand_id).values(is_active=HangarStand.is_active)
    )
    return session.exec(
        select(HangarStand)
        .where(HangarStand.id == stand_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()
