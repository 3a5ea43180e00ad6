from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from hangarplan.database import get_session
from hangarplan.routes.deps import get_actor, to_http_error
from hangarplan.services import placement_orchestrator
from hangarplan.services.planning_errors import PlanningError
from hangarplan.utils.datetimes import UtcDateTime

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class AssignReservationRequest(BaseModel):
    layout_id: int
    stand_id: int
    # Defaults to the event window when omitted
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    change_reason: Optional[str] = None


class DndMoveRequest(BaseModel):
    event_id: int
    layout_id: int
    stand_id: int
    bump_on_conflict: bool = False
    bumped_event_id: Optional[int] = None
    change_reason: Optional[str] = None


class DndPlaceRequest(DndMoveRequest):
    start_at: datetime
    end_at: datetime


class ReservationResponse(BaseModel):
    id: int
    event_id: int
    layout_id: int
    stand_id: int
    start_at: UtcDateTime
    end_at: UtcDateTime
    created_at: UtcDateTime
    updated_at: UtcDateTime

    class Config:
        from_attributes = True


class PlacementResponse(BaseModel):
    reservation: ReservationResponse
    bumped_event_ids: List[int]
    window_diverges: bool


class UnassignResponse(BaseModel):
    deleted: int


class ReservationRowResponse(ReservationResponse):
    stand_code: str
    stand_name: Optional[str]
    event_title: str
    event_status: str
    event_level: str
    tail_number: Optional[str]


def _placement_response(result: placement_orchestrator.PlacementResult) -> PlacementResponse:
    return PlacementResponse(
        reservation=ReservationResponse.model_validate(result.reservation),
        bumped_event_ids=result.bumped_event_ids,
        window_diverges=result.window_diverges,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/reservations", response_model=List[ReservationRowResponse])
def list_reservations(
    layout_id: int,
    from_at: Optional[datetime] = Query(default=None, alias="from"),
    to_at: Optional[datetime] = Query(default=None, alias="to"),
    session: Session = Depends(get_session),
):
    """Reservations on a layout for the timeline/map, non-cancelled events only"""
    rows = placement_orchestrator.list_reservations(session, layout_id, from_at=from_at, to_at=to_at)
    return [
        ReservationRowResponse(
            id=row.reservation.id,
            event_id=row.reservation.event_id,
            layout_id=row.reservation.layout_id,
            stand_id=row.reservation.stand_id,
            start_at=row.reservation.start_at,
            end_at=row.reservation.end_at,
            created_at=row.reservation.created_at,
            updated_at=row.reservation.updated_at,
            stand_code=row.stand.code,
            stand_name=row.stand.name,
            event_title=row.event.title,
            event_status=row.event.status,
            event_level=row.event.level,
            tail_number=row.tail_number,
        )
        for row in rows
    ]


@router.put("/reservations/by-event/{event_id}", response_model=PlacementResponse)
def assign_reservation(
    event_id: int,
    request: AssignReservationRequest,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Create or replace an event's stand reservation. Never displaces other events."""
    try:
        result = placement_orchestrator.assign_reservation(
            session,
            event_id=event_id,
            layout_id=request.layout_id,
            stand_id=request.stand_id,
            actor=actor,
            start_at=request.start_at,
            end_at=request.end_at,
            change_reason=request.change_reason,
        )
    except PlanningError as e:
        raise to_http_error(e)
    return _placement_response(result)


@router.delete("/reservations/by-event/{event_id}", response_model=UnassignResponse)
def unassign_reservation(
    event_id: int,
    change_reason: Optional[str] = None,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Remove an event's reservation; deleted=0 when there was none"""
    deleted = placement_orchestrator.unassign_reservation(
        session, event_id=event_id, actor=actor, change_reason=change_reason
    )
    return UnassignResponse(deleted=deleted)


@router.post("/reservations/dnd-move", response_model=PlacementResponse)
def dnd_move(
    request: DndMoveRequest,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Drop an event on a stand, optionally displacing whoever holds it"""
    try:
        result = placement_orchestrator.dnd_move(
            session,
            event_id=request.event_id,
            layout_id=request.layout_id,
            stand_id=request.stand_id,
            actor=actor,
            bump_on_conflict=request.bump_on_conflict,
            bumped_event_id=request.bumped_event_id,
            change_reason=request.change_reason,
        )
    except PlanningError as e:
        raise to_http_error(e)
    return _placement_response(result)


@router.post("/reservations/dnd-place", response_model=PlacementResponse)
def dnd_place(
    request: DndPlaceRequest,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Drop an event on a stand at a new time window"""
    try:
        result = placement_orchestrator.dnd_place(
            session,
            event_id=request.event_id,
            layout_id=request.layout_id,
            stand_id=request.stand_id,
            start_at=request.start_at,
            end_at=request.end_at,
            actor=actor,
            bump_on_conflict=request.bump_on_conflict,
            bumped_event_id=request.bumped_event_id,
            change_reason=request.change_reason,
        )
    except PlanningError as e:
        raise to_http_error(e)
    return _placement_response(result)
