import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from uuid import uuid4

# Settings are read at import time; tests never touch a configured server database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CACHE_ENABLED"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from appointment_engine.core.security import create_access_token
from appointment_engine.database import enable_sqlite_foreign_keys, get_db
from appointment_engine.dependencies import get_cache_manager, get_clock
from appointment_engine.main import app
from appointment_engine.models import clinics, doctors, metadata, patients
from appointment_engine.schemas.auth import Caller, CallerRole

WEEKDAY_TEMPLATE = {
    "morning": {"start": "09:00", "end": "12:00", "is_off": False},
    "evening": {"start": "14:00", "end": "18:00", "is_off": False},
}
DOCTOR_AVAILABILITY = {
    day: WEEKDAY_TEMPLATE
    for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
}

# Monday 2026-03-02, 14:05 in Asia/Kolkata
NOW_UTC = datetime(2026, 3, 2, 8, 35, tzinfo=UTC)
TODAY = NOW_UTC.date()
TOMORROW = TODAY + timedelta(days=1)
YESTERDAY = TODAY - timedelta(days=1)


class FixedClock:
    """Clock frozen at a settable instant."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at Monday 14:05 clinic time."""
    return FixedClock(NOW_UTC)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator:
    """File-backed SQLite database per test so separate sessions really compete."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    enable_sqlite_foreign_keys(test_engine.sync_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> dict:
    """Two clinics, an active doctor with a weekly template, an inactive doctor and patients."""
    clinic_id = uuid4()
    other_clinic_id = uuid4()
    doctor_id = uuid4()
    inactive_doctor_id = uuid4()
    other_doctor_id = uuid4()
    patient_ids = [uuid4() for _ in range(6)]

    await db_session.execute(
        insert(clinics),
        [
            {
                "id": clinic_id,
                "name": "Sunrise Clinic",
                "timezone": "Asia/Kolkata",
                "slot_duration_minutes": 15,
                "default_availability": None,
            },
            {
                "id": other_clinic_id,
                "name": "Harbour Clinic",
                "timezone": "Asia/Kolkata",
                "slot_duration_minutes": 15,
                "default_availability": DOCTOR_AVAILABILITY,
            },
        ],
    )
    await db_session.execute(
        insert(doctors),
        [
            {
                "id": doctor_id,
                "clinic_id": clinic_id,
                "full_name": "Dr. Asha Rao",
                "status": "active",
                "availability": DOCTOR_AVAILABILITY,
                "slot_duration_minutes": 30,
            },
            {
                "id": inactive_doctor_id,
                "clinic_id": clinic_id,
                "full_name": "Dr. Retired",
                "status": "inactive",
                "availability": DOCTOR_AVAILABILITY,
                "slot_duration_minutes": 30,
            },
            {
                "id": other_doctor_id,
                "clinic_id": other_clinic_id,
                "full_name": "Dr. Vikram Sen",
                "status": "active",
                "availability": None,
                "slot_duration_minutes": None,
            },
        ],
    )
    await db_session.execute(
        insert(patients),
        [{"id": pid, "full_name": f"Patient {i}"} for i, pid in enumerate(patient_ids)],
    )
    await db_session.commit()

    return {
        "clinic_id": clinic_id,
        "other_clinic_id": other_clinic_id,
        "doctor_id": doctor_id,
        "inactive_doctor_id": inactive_doctor_id,
        "other_doctor_id": other_doctor_id,
        "patient_ids": patient_ids,
    }


@pytest.fixture
def staff(seed) -> Caller:
    """Staff member of the seeded clinic."""
    return Caller(id=uuid4(), role=CallerRole.STAFF, clinic_id=seed["clinic_id"])


@pytest.fixture
def other_staff(seed) -> Caller:
    """Staff member of a different clinic."""
    return Caller(id=uuid4(), role=CallerRole.STAFF, clinic_id=seed["other_clinic_id"])


@pytest.fixture
def patient(seed) -> Caller:
    """The first seeded patient."""
    return Caller(id=seed["patient_ids"][0], role=CallerRole.PATIENT)


def _headers(caller: Caller) -> dict:
    token_data = {"sub": str(caller.id), "role": caller.role.value}
    if caller.clinic_id:
        token_data["clinic_id"] = str(caller.clinic_id)
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers(staff) -> dict:
    """Bearer headers for the seeded clinic's staff member."""
    return _headers(staff)


@pytest.fixture
def other_staff_headers(other_staff) -> dict:
    """Bearer headers for another clinic's staff member."""
    return _headers(other_staff)


@pytest.fixture
def patient_headers(patient) -> dict:
    """Bearer headers for the first seeded patient."""
    return _headers(patient)


@pytest_asyncio.fixture
async def client(session_factory, clock) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def reservation_payload(seed) -> dict:
    """Staff reservation for tomorrow 09:30 with the seeded doctor."""
    return {
        "clinic_id": str(seed["clinic_id"]),
        "doctor_id": str(seed["doctor_id"]),
        "patient_id": str(seed["patient_ids"][0]),
        "appointment_date": TOMORROW.isoformat(),
        "appointment_time": "09:30",
    }
