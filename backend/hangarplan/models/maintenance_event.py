from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Index, String
from sqlmodel import Column, Field, Relationship, SQLModel

from hangarplan.utils.datetimes import utcnow

if TYPE_CHECKING:
    from hangarplan.models.aircraft import Aircraft


class PlanningLevel(str, Enum):
    STRATEGIC = "STRATEGIC"
    OPERATIONAL = "OPERATIONAL"


class EventStatus(str, Enum):
    DRAFT = "DRAFT"
    PLANNED = "PLANNED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class MaintenanceEvent(SQLModel, table=True):
    __table_args__ = (Index("ix_maintenanceevent_window", "start_at", "end_at"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    level: PlanningLevel = Field(sa_column=Column(String, nullable=False))
    status: EventStatus = Field(default=EventStatus.PLANNED, sa_column=Column(String, nullable=False))
    title: str
    aircraft_id: int = Field(foreign_key="aircraft.id", index=True)
    start_at: datetime
    end_at: datetime  # exclusive

    # Denormalized placement pointer; owned by the stand reservation when one exists
    hangar_id: Optional[int] = Field(default=None, foreign_key="hangar.id", index=True)
    layout_id: Optional[int] = Field(default=None, foreign_key="hangarlayout.id", index=True)

    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    # Relationships
    aircraft: "Aircraft" = Relationship()
