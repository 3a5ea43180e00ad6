import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./hangar.db")

_is_sqlite = DATABASE_URL.startswith("sqlite")
# Seconds a SQLite writer waits for another writer's stand lock before failing
SQLITE_BUSY_TIMEOUT = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))

_connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT} if _is_sqlite else {}
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=_echo,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(session: Session, label: str) -> Iterator[Session]:
    """
    Run a multi-step mutation as one unit of work.

    Everything written through `session` inside the block is committed once on
    exit. Any exception rolls the whole unit back and is re-raised unchanged,
    so callers never observe partial state.
    """
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.warning(f"{label} rolled back: {e}")
        raise


def init_db() -> None:
    """Initialize database - create all tables"""
    # Import all models to ensure they're registered with SQLModel metadata
    from hangarplan.models.aircraft import Aircraft  # noqa: F401
    from hangarplan.models.event_audit import MaintenanceEventAudit  # noqa: F401
    from hangarplan.models.hangar import Hangar, HangarLayout, HangarStand  # noqa: F401
    from hangarplan.models.maintenance_event import MaintenanceEvent  # noqa: F401
    from hangarplan.models.stand_reservation import StandReservation  # noqa: F401

    SQLModel.metadata.create_all(engine)
