from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from hangarplan.utils.datetimes import utcnow


class Hangar(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(unique=True)
    name: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)


class HangarLayout(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("hangar_id", "code", name="uq_layout_hangar_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    hangar_id: int = Field(foreign_key="hangar.id", index=True)
    code: str
    name: str
    description: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    hangar: "Hangar" = Relationship()


class HangarStand(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("layout_id", "code", name="uq_stand_layout_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    layout_id: int = Field(foreign_key="hangarlayout.id", index=True)
    code: str
    name: str
    # Map geometry (metres, layout origin top-left); rendering only
    x: float = Field(default=0)
    y: float = Field(default=0)
    w: float = Field(default=0)
    h: float = Field(default=0)
    rotate: float = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    layout: "HangarLayout" = Relationship()
