import os

# Keep app startup off the on-disk database and the background sweep off
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["RECONCILE_ENABLED"] = "false"

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from app.database import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.models.court import Court  # noqa: E402
from app.models.match import Match  # noqa: E402
from app.models.tournament import Tournament  # noqa: E402
from app.models.umpire import Umpire  # noqa: E402
from app.services.match_store import SqlMatchStore  # noqa: E402

from tests.fakes import FrozenClock, InMemoryMatchStore  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables are dropped and recreated per test: sweeps read every running
#    match, so leftovers from another test would change their results
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

T0 = datetime(2025, 6, 1, 10, 0, 0, tzinfo=timezone.utc)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on freshly created tables."""
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def anyio_backend() -> str:
    """The sweep scheduler runs on asyncio; don't parametrize over trio."""
    return "asyncio"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def sql_store(session: Session) -> SqlMatchStore:
    return SqlMatchStore(session)


@pytest.fixture
def fake_store() -> InMemoryMatchStore:
    return InMemoryMatchStore()


@pytest.fixture
def tournament_setup(session: Session):
    """Tournament with one umpire, one court and one scheduled 30-minute match."""
    tournament = Tournament(name="Summer Open", location="Centre Courts", timezone="Asia/Kolkata")
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    umpire = Umpire(full_name="Asha Rao", license_no="UMP-001", tournament_id=tournament.id)
    court = Court(tournament_id=tournament.id, name="Court 1", venue="Main Hall")
    session.add(umpire)
    session.add(court)
    session.commit()
    session.refresh(umpire)
    session.refresh(court)

    match = Match(
        tournament_id=tournament.id,
        round="Quarterfinal",
        match_order=1,
        entry1_id=101,
        entry2_id=102,
        umpire_id=umpire.id,
        court_id=court.id,
        scheduled_time=datetime(2025, 6, 1, 10, 0, 0),
        duration_minutes=30,
        match_code="QF1-4821",
    )
    session.add(match)
    session.commit()
    session.refresh(match)

    return {
        "tournament_id": tournament.id,
        "umpire_id": umpire.id,
        "court_id": court.id,
        "match_id": match.id,
    }
