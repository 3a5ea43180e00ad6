from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Index
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from hangarplan.utils.datetimes import utcnow

if TYPE_CHECKING:
    from hangarplan.models.hangar import HangarStand


class StandReservation(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("event_id", name="uq_reservation_event"),
        Index("ix_standreservation_stand_window", "stand_id", "start_at", "end_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="maintenanceevent.id")
    layout_id: int = Field(foreign_key="hangarlayout.id", index=True)
    stand_id: int = Field(foreign_key="hangarstand.id")
    start_at: datetime
    end_at: datetime  # exclusive
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    # Relationships
    stand: "HangarStand" = Relationship()
