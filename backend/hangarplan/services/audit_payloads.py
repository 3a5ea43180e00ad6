"""
Typed shapes for MaintenanceEventAudit.changes.

Every audit row stores exactly one of these payloads, tagged by `kind`:

- created:   snapshot of a new event                       (action CREATE)
- update:    per-field from/to diff, optional placement     (action UPDATE)
- reserve:   reservation from/to, optional bump metadata    (action RESERVE)
- unreserve: reservation removed on request                 (action UNRESERVE)
- bumped:    reservation removed because another event took the stand (action UNRESERVE)

Timestamps inside payloads are canonical UTC strings (see iso_utc).
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from hangarplan.models.event_audit import EventAuditAction
from hangarplan.models.maintenance_event import MaintenanceEvent
from hangarplan.models.stand_reservation import StandReservation
from hangarplan.utils.datetimes import iso_utc

# Event fields tracked in UPDATE diffs
TRACKED_EVENT_FIELDS = (
    "title",
    "level",
    "status",
    "aircraft_id",
    "start_at",
    "end_at",
    "hangar_id",
    "layout_id",
    "notes",
)


class PlacementSnapshot(BaseModel):
    layout_id: int
    stand_id: int
    start_at: str
    end_at: str


class WindowSnapshot(BaseModel):
    start_at: str
    end_at: str


class ReservationChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[PlacementSnapshot] = Field(default=None, alias="from")
    to: Optional[PlacementSnapshot] = None


class FieldChange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Any = Field(default=None, alias="from")
    to: Any = None


class BumpInfo(BaseModel):
    requested: bool
    displaced_event_ids: List[int] = Field(default_factory=list)


class CreatedPayload(BaseModel):
    kind: Literal["created"] = "created"
    created: Dict[str, Any]


class UpdatePayload(BaseModel):
    kind: Literal["update"] = "update"
    fields: Dict[str, FieldChange]
    reservation: Optional[ReservationChange] = None
    bump: Optional[BumpInfo] = None


class ReservePayload(BaseModel):
    kind: Literal["reserve"] = "reserve"
    reservation: ReservationChange
    bump: Optional[BumpInfo] = None
    # Present only when the reservation window differs from the event window
    event_window: Optional[WindowSnapshot] = None


class UnreservePayload(BaseModel):
    kind: Literal["unreserve"] = "unreserve"
    reservation: ReservationChange


class BumpedPayload(BaseModel):
    kind: Literal["bumped"] = "bumped"
    reservation: ReservationChange
    fields: Dict[str, FieldChange]
    displaced_by_event_id: int


AuditPayload = Annotated[
    Union[CreatedPayload, UpdatePayload, ReservePayload, UnreservePayload, BumpedPayload],
    Field(discriminator="kind"),
]

audit_payload_adapter: TypeAdapter = TypeAdapter(AuditPayload)

ALLOWED_KINDS = {
    EventAuditAction.CREATE: {"created"},
    EventAuditAction.UPDATE: {"update"},
    EventAuditAction.RESERVE: {"reserve"},
    EventAuditAction.UNRESERVE: {"unreserve", "bumped"},
}


def snapshot_reservation(reservation: Optional[StandReservation]) -> Optional[PlacementSnapshot]:
    if reservation is None:
        return None
    return PlacementSnapshot(
        layout_id=reservation.layout_id,
        stand_id=reservation.stand_id,
        start_at=iso_utc(reservation.start_at),
        end_at=iso_utc(reservation.end_at),
    )


def plain_value(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return iso_utc(value)
    if hasattr(value, "value"):
        return value.value
    return value


def snapshot_event(event: MaintenanceEvent) -> Dict[str, Any]:
    return {name: plain_value(getattr(event, name)) for name in TRACKED_EVENT_FIELDS}


def diff_snapshots(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, FieldChange]:
    changes: Dict[str, FieldChange] = {}
    for name in TRACKED_EVENT_FIELDS:
        if before.get(name) != after.get(name):
            changes[name] = FieldChange(from_=before.get(name), to=after.get(name))
    return changes
