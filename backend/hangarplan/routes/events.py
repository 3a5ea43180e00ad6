from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlmodel import Session

from hangarplan.database import get_session
from hangarplan.models.maintenance_event import EventStatus, PlanningLevel
from hangarplan.routes.deps import get_actor, to_http_error
from hangarplan.services import audit_recorder, event_service
from hangarplan.services.planning_errors import PlanningError
from hangarplan.utils.datetimes import UtcDateTime

router = APIRouter()


class EventCreate(BaseModel):
    level: PlanningLevel
    title: str
    aircraft_id: int
    start_at: datetime
    end_at: datetime
    status: Optional[EventStatus] = None
    hangar_id: Optional[int] = None
    layout_id: Optional[int] = None
    notes: Optional[str] = None
    change_reason: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if not v or not v.strip():
            raise ValueError("title cannot be empty")
        return v.strip()


class EventUpdate(BaseModel):
    level: Optional[PlanningLevel] = None
    status: Optional[EventStatus] = None
    title: Optional[str] = None
    aircraft_id: Optional[int] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    hangar_id: Optional[int] = None
    layout_id: Optional[int] = None
    notes: Optional[str] = None
    change_reason: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if v is not None and not v.strip():
            raise ValueError("title cannot be empty")
        return v.strip() if v else v


class EventResponse(BaseModel):
    id: int
    level: str
    status: str
    title: str
    aircraft_id: int
    start_at: UtcDateTime
    end_at: UtcDateTime
    hangar_id: Optional[int] = None
    layout_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    class Config:
        from_attributes = True


class AuditEntryResponse(BaseModel):
    id: int
    event_id: int
    action: str
    actor: str
    reason: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    created_at: UtcDateTime

    class Config:
        from_attributes = True


@router.get("/events", response_model=List[EventResponse])
def list_events(
    from_at: Optional[datetime] = Query(default=None, alias="from"),
    to_at: Optional[datetime] = Query(default=None, alias="to"),
    hangar_id: Optional[int] = None,
    layout_id: Optional[int] = None,
    aircraft_id: Optional[int] = None,
    level: Optional[PlanningLevel] = None,
    session: Session = Depends(get_session),
):
    """Events overlapping a time range"""
    return event_service.list_events(
        session,
        from_at=from_at,
        to_at=to_at,
        hangar_id=hangar_id,
        layout_id=layout_id,
        aircraft_id=aircraft_id,
        level=level,
    )


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    event_data: EventCreate,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Create a maintenance event"""
    try:
        return event_service.create_event(
            session,
            level=event_data.level,
            title=event_data.title,
            aircraft_id=event_data.aircraft_id,
            start_at=event_data.start_at,
            end_at=event_data.end_at,
            actor=actor,
            status=event_data.status,
            hangar_id=event_data.hangar_id,
            layout_id=event_data.layout_id,
            notes=event_data.notes,
            change_reason=event_data.change_reason,
        )
    except PlanningError as e:
        raise to_http_error(e)


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int, session: Session = Depends(get_session)):
    try:
        return event_service.get_event(session, event_id)
    except PlanningError as e:
        raise to_http_error(e)


@router.patch("/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: int,
    event_data: EventUpdate,
    session: Session = Depends(get_session),
    actor: str = Depends(get_actor),
):
    """Partially update an event; a change reason is required when anything changes"""
    patch = event_data.model_dump(exclude_unset=True)
    change_reason = patch.pop("change_reason", None)
    try:
        return event_service.update_event(
            session, event_id=event_id, patch=patch, actor=actor, change_reason=change_reason
        )
    except PlanningError as e:
        raise to_http_error(e)


@router.delete("/events/{event_id}")
def delete_event(event_id: int, session: Session = Depends(get_session)):
    """Delete an event along with its reservation and history"""
    try:
        event_service.delete_event(session, event_id)
    except PlanningError as e:
        raise to_http_error(e)
    return {"deleted": True, "event_id": event_id}


@router.get("/events/{event_id}/history", response_model=List[AuditEntryResponse])
def get_event_history(event_id: int, session: Session = Depends(get_session)):
    """Audit trail for an event, newest first"""
    return audit_recorder.history(session, event_id)
