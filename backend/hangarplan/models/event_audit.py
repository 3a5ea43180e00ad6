from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Index, String
from sqlmodel import Column, Field, SQLModel

from hangarplan.utils.datetimes import utcnow


class EventAuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    RESERVE = "RESERVE"
    UNRESERVE = "UNRESERVE"


class MaintenanceEventAudit(SQLModel, table=True):
    """Append-only history row for one mutation of a maintenance event."""

    __table_args__ = (Index("ix_eventaudit_event_created", "event_id", "created_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="maintenanceevent.id")
    action: EventAuditAction = Field(sa_column=Column(String, nullable=False))
    actor: str = Field(default="browser", max_length=80)
    reason: Optional[str] = None
    changes: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=utcnow)
