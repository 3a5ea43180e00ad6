"""
Datetime helpers.

All timestamps are persisted as naive UTC. Values arriving from the request
layer may carry an offset; normalize them once at the boundary with
to_naive_utc() so comparisons against stored values never mix naive and
aware datetimes.
"""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import PlainSerializer


def utcnow() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def iso_utc(value: Optional[datetime]) -> Optional[str]:
    """Canonical string form used in audit payloads: 2026-02-01T10:00:00.000Z"""
    if value is None:
        return None
    value = to_naive_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and a_end > b_start


# Response field type: stored naive UTC, rendered in the canonical "Z" form
UtcDateTime = Annotated[datetime, PlainSerializer(iso_utc, return_type=str)]
