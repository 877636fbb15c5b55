import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("GENERATOR_MAX_BACKTRACKS", "500")

import pytest
from fastapi.testclient import TestClient  # calls FastAPI routes without running a real server
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotforge.api.deps import get_db, get_session_factory
from slotforge.core.config import DEFAULT_PERIOD_CALENDAR
from slotforge.db.base import Base
from slotforge.main import app
import slotforge.models  # noqa: F401
from slotforge.services.directory import EmploymentMode, InstructorDirectory, InstructorProfile
from slotforge.services.periods import PeriodCalendar

TENANT = "tenant-1"
TERM = "First Term"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def engine():
    # One shared in-memory database per test.
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def calendar():
    return PeriodCalendar.from_entries(DEFAULT_PERIOD_CALENDAR)


@pytest.fixture()
def directory():
    return InstructorDirectory(
        [
            InstructorProfile("wilson", "Mr. Wilson", specializations=frozenset({"Math"})),
            InstructorProfile("garcia", "Ms. Garcia", specializations=frozenset({"Science"})),
            InstructorProfile(
                "lee",
                "Ms. Lee",
                employment_mode=EmploymentMode.part_time,
                available_days=frozenset({"Monday", "Wednesday"}),
                specializations=frozenset({"Art"}),
            ),
        ]
    )


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app, headers={"X-Tenant-ID": TENANT}) as test_client:
        yield test_client

    app.dependency_overrides.clear()
