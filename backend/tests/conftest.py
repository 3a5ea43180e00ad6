import os

# Keep the app's own engine off disk; tests use test_engine below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import datetime, timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from hangarplan.database import get_session  # noqa: E402
from hangarplan.main import app  # noqa: E402
from hangarplan.models import (  # noqa: E402
    Aircraft,
    EventStatus,
    Hangar,
    HangarLayout,
    HangarStand,
    MaintenanceEvent,
    PlanningLevel,
)

TEST_DATABASE_URL = "sqlite:///:memory:"

# Monday 2026-03-02 08:00 UTC; every test window is expressed relative to it
T0 = datetime(2026, 3, 2, 8, 0)

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables created and dropped per test, not relying on app startup
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def at(hours: float) -> datetime:
    """T0 shifted by a number of hours"""
    return T0 + timedelta(hours=hours)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session"""
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="hangar")
def hangar_fixture(session: Session):
    """One hangar with two layouts; layout A has stands A1-A3 (A3 inactive), layout B has B1"""
    hangar = Hangar(code="HEL-H3", name="Helsinki Hangar 3")
    session.add(hangar)
    session.commit()
    session.refresh(hangar)

    layout_a = HangarLayout(hangar_id=hangar.id, code="WIDE", name="Widebody layout")
    layout_b = HangarLayout(hangar_id=hangar.id, code="NARROW", name="Narrowbody layout")
    session.add(layout_a)
    session.add(layout_b)
    session.commit()
    session.refresh(layout_a)
    session.refresh(layout_b)

    stands = {
        "A1": HangarStand(layout_id=layout_a.id, code="A1", name="Stand A1", x=0, y=0, w=70, h=65),
        "A2": HangarStand(layout_id=layout_a.id, code="A2", name="Stand A2", x=75, y=0, w=70, h=65),
        "A3": HangarStand(layout_id=layout_a.id, code="A3", name="Stand A3", is_active=False),
        "B1": HangarStand(layout_id=layout_b.id, code="B1", name="Stand B1", x=0, y=0, w=40, h=40),
    }
    for stand in stands.values():
        session.add(stand)
    session.commit()
    for stand in stands.values():
        session.refresh(stand)

    return SimpleNamespace(hangar=hangar, layout=layout_a, other_layout=layout_b, stands=stands)


@pytest.fixture(name="fleet")
def fleet_fixture(session: Session):
    """Three aircraft keyed by tail number"""
    fleet = {}
    for tail, serial in (("OH-LWA", "1001"), ("OH-LWB", "1002"), ("OH-LWC", "1003")):
        aircraft = Aircraft(tail_number=tail, serial_number=serial)
        session.add(aircraft)
        fleet[tail] = aircraft
    session.commit()
    for aircraft in fleet.values():
        session.refresh(aircraft)
    return fleet


@pytest.fixture(name="make_event")
def make_event_fixture(session: Session, fleet):
    """Factory for maintenance events, inserted directly (no audit row)"""

    def _make(
        title: str,
        start_at: datetime,
        end_at: datetime,
        tail: str = "OH-LWA",
        status: EventStatus = EventStatus.PLANNED,
        level: PlanningLevel = PlanningLevel.OPERATIONAL,
    ) -> MaintenanceEvent:
        event = MaintenanceEvent(
            level=level.value,
            status=status.value,
            title=title,
            aircraft_id=fleet[tail].id,
            start_at=start_at,
            end_at=end_at,
        )
        session.add(event)
        session.commit()
        session.refresh(event)
        return event

    return _make
