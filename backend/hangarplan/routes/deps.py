"""Shared route dependencies and error translation."""

from typing import Optional

from fastapi import Header, HTTPException

from hangarplan.services.planning_errors import (
    PlanningError,
    PlanningNotFoundError,
    PlanningValidationError,
    StandConflictError,
)

DEFAULT_ACTOR = "browser"
MAX_ACTOR_LENGTH = 80


def get_actor(
    x_actor: Optional[str] = Header(default=None),
    x_user: Optional[str] = Header(default=None),
) -> str:
    """Who is making the change, for the audit trail"""
    for candidate in (x_actor, x_user):
        if candidate and candidate.strip():
            return candidate.strip()[:MAX_ACTOR_LENGTH]
    return DEFAULT_ACTOR


def to_http_error(e: PlanningError) -> HTTPException:
    if isinstance(e, StandConflictError):
        return HTTPException(status_code=409, detail=e.to_dict())
    if isinstance(e, PlanningNotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, PlanningValidationError):
        return HTTPException(status_code=400, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)
