"""
Domain errors raised by the planning services.

Routes translate these into HTTP responses; services never raise
HTTPException themselves.
"""

from typing import TYPE_CHECKING, Optional

from hangarplan.utils.datetimes import iso_utc

if TYPE_CHECKING:
    from hangarplan.services.conflict_checker import ReservationConflict


class PlanningError(Exception):
    """Base exception for planning errors"""

    code = "PLANNING_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PlanningValidationError(PlanningError):
    """Input is malformed or logically inconsistent; nothing was written"""

    code = "VALIDATION_ERROR"


class PlanningNotFoundError(PlanningError):
    """A referenced event, layout or stand does not exist"""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Optional[int]):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class StandConflictError(PlanningError):
    """The target stand is occupied for the requested window and displacement was not authorized"""

    code = "STAND_CONFLICT"

    def __init__(self, blocking: "ReservationConflict", message: Optional[str] = None):
        super().__init__(message or f"Stand is already taken: {blocking.display_label}")
        self.blocking = blocking

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "blocking_event_id": self.blocking.event_id,
            "blocking_event_title": self.blocking.event_title,
            "blocking_tail_number": self.blocking.tail_number,
            "blocking_start_at": iso_utc(self.blocking.start_at),
            "blocking_end_at": iso_utc(self.blocking.end_at),
        }
