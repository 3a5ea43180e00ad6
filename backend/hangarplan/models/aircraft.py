from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from hangarplan.utils.datetimes import utcnow


class Aircraft(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tail_number: str = Field(unique=True, index=True)
    serial_number: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
