"""Shared test fixtures — async DB, client, clock, auth helpers, factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from leavetrack.auth.dependencies import Principal
from leavetrack.common.clock import FixedClock, get_clock
from leavetrack.common.constants import (
    EmployeeStatus,
    LeaveStatus,
    LeaveType,
    UserRole,
)
from leavetrack.config import settings
from leavetrack.database import Base, get_db
from leavetrack.main import create_app
from leavetrack.notifications.service import (
    RecordingNotificationSink,
    set_notification_sink,
)
from leavetrack.policy.schemas import PolicySettings

# Import ALL model modules so the metadata knows every table
import leavetrack.common.audit  # noqa: F401
import leavetrack.employees.models  # noqa: F401
import leavetrack.leave.models  # noqa: F401
import leavetrack.policy.models  # noqa: F401

from leavetrack.employees.models import Department, Employee
from leavetrack.leave.calendar import working_days
from leavetrack.leave.models import LeaveRequest

# Tuesday; every date-relative rule in the suite is measured from here
TODAY = date(2025, 7, 1)

DEFAULT_POLICY = PolicySettings()

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ── Test database (SQLite in-memory, one per test) ──────────────────

@pytest.fixture
async def engine():
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for direct service calls and seeding."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock.on(TODAY)


@pytest.fixture
def sink() -> RecordingNotificationSink:
    """Capture notifications for the duration of a test."""
    recorder = RecordingNotificationSink()
    previous = set_notification_sink(recorder)
    yield recorder
    set_notification_sink(previous)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from leavetrack.common.rate_limit import limiter

    limiter.reset()
    yield


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app(session_factory, clock):
    """Create a fresh app instance with DB and clock dependencies overridden."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_clock] = lambda: clock
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    name: str = "Test User",
    role: UserRole = UserRole.employee,
    status: EmployeeStatus = EmployeeStatus.active,
    department_id: Optional[uuid.UUID] = None,
    **allowances: Optional[int],
) -> dict:
    now = datetime.now(timezone.utc)
    return dict(
        id=uuid.uuid4(),
        email=email or f"user.{uuid.uuid4().hex[:8]}@example.com",
        name=name,
        role=role,
        status=status,
        department_id=department_id,
        created_at=now,
        updated_at=now,
        **allowances,
    )


async def seed_department(db: AsyncSession, name: str = "Marketing") -> Department:
    now = datetime.now(timezone.utc)
    dept = Department(id=uuid.uuid4(), name=name, created_at=now, updated_at=now)
    db.add(dept)
    await db.flush()
    return dept


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    employee = Employee(**_make_employee(**kwargs))
    db.add(employee)
    await db.flush()
    return employee


async def seed_request(
    db: AsyncSession,
    employee: Employee,
    start: date,
    end: date,
    *,
    leave_type: LeaveType = LeaveType.vacation,
    status: LeaveStatus = LeaveStatus.pending,
    notes: Optional[str] = None,
) -> LeaveRequest:
    """Insert a request directly, bypassing the lifecycle rules."""
    now = datetime.now(timezone.utc)
    req = LeaveRequest(
        id=uuid.uuid4(),
        employee_id=employee.id,
        leave_type=leave_type,
        start_date=start,
        end_date=end,
        working_days=working_days(start, end),
        status=status,
        notes=notes,
        medical_certificate_deferred=leave_type == LeaveType.sick,
        created_at=now,
        updated_at=now,
    )
    db.add(req)
    await db.flush()
    return req


def principal_for(employee: Employee) -> Principal:
    return Principal(
        user_id=employee.id,
        role=employee.role,
        department_id=employee.department_id,
    )


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    principal: Principal,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(principal.user_id),
        "role": principal.role.value,
        "exp": exp,
    }
    if principal.department_id is not None:
        payload["department_id"] = str(principal.department_id)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(employee: Employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(principal_for(employee))}"}


# ── Common seeded world ─────────────────────────────────────────────

@pytest.fixture
async def marketing(db) -> Department:
    return await seed_department(db, "Marketing")


@pytest.fixture
async def sales(db) -> Department:
    return await seed_department(db, "Sales")


@pytest.fixture
async def admin(db, marketing) -> Employee:
    return await seed_employee(
        db, name="Ada Admin", email="admin@example.com",
        role=UserRole.admin, department_id=marketing.id,
    )


@pytest.fixture
async def employee(db, marketing) -> Employee:
    return await seed_employee(
        db, name="Eve Employee", email="eve@example.com", department_id=marketing.id,
    )


@pytest.fixture
async def colleague(db, marketing) -> Employee:
    return await seed_employee(
        db, name="Carl Colleague", email="carl@example.com", department_id=marketing.id,
    )


@pytest.fixture
async def outsider(db, sales) -> Employee:
    return await seed_employee(
        db, name="Otto Outsider", email="otto@example.com", department_id=sales.id,
    )
