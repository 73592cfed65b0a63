"""
Pytest fixtures for test database, client, and authentication.

Every test gets its own SQLite file so separate sessions really contend for
the same rows, the way API workers contend on PostgreSQL.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_BACKEND", "database")
os.environ.setdefault("PHASE_AUTO_ADVANCE_ENABLED", "false")

from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from interview_booking.main import app
from interview_booking.db.base import Base
from interview_booking.db.session import build_engine, build_session_factory, get_db
from interview_booking.core.security import create_access_token
from interview_booking.models import (
    Company, Event, EventParticipant, Offer, Phase, PhaseMode, Slot, TimeRange, User,
)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """Fresh database file per test; tables created up front."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


async def _add(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def factory(role: str = "student", is_deprioritized: bool = False) -> User:
        counter["n"] += 1
        return await _add(db_session, User(
            email=f"{role}{counter['n']}@example.com",
            full_name=f"{role.title()} {counter['n']}",
            role=role,
            is_deprioritized=is_deprioritized,
        ))

    return factory


@pytest_asyncio.fixture
async def student(make_user) -> User:
    return await make_user("student")


@pytest_asyncio.fixture
async def other_student(make_user) -> User:
    return await make_user("student")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user("admin")


@pytest.fixture
def headers_for():
    return auth_headers_for


@pytest_asyncio.fixture
async def student_headers(student: User) -> dict:
    return auth_headers_for(student)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return auth_headers_for(admin)


@pytest_asyncio.fixture
async def make_company(db_session: AsyncSession):
    counter = {"n": 0}

    async def factory(with_offer: bool = True) -> Company:
        counter["n"] += 1
        company = await _add(db_session, Company(name=f"Company {counter['n']}"))
        if with_offer:
            await _add(db_session, Offer(company_id=company.id, title=f"Internship {counter['n']}"))
        return company

    return factory


@pytest_asyncio.fixture
async def company(make_company) -> Company:
    return await make_company()


@pytest_asyncio.fixture
async def make_event(db_session: AsyncSession):
    """
    Events default to manual mode pinned to the given phase, so tests don't
    depend on the wall clock. Pass phase_mode=DATE_BASED plus windows to test
    scheduling.
    """

    async def factory(
        phase: Phase = Phase.PHASE_1,
        phase_mode: PhaseMode = PhaseMode.MANUAL,
        phase1_max: int = 3,
        phase2_max: int = 6,
        windows: Optional[tuple] = None,
        **overrides,
    ) -> Event:
        now = datetime.now(timezone.utc)
        p1s, p1e, p2s, p2e = windows or (
            now - timedelta(days=1),
            now + timedelta(days=1),
            now + timedelta(days=2),
            now + timedelta(days=3),
        )
        values = dict(
            name="Career Fair",
            date=(now + timedelta(days=7)).date(),
            interview_duration_minutes=15,
            buffer_minutes=5,
            slots_per_time=1,
            phase_mode=phase_mode.value,
            current_phase=int(phase),
            phase_version=1,
            phase1_start=p1s,
            phase1_end=p1e,
            phase2_start=p2s,
            phase2_end=p2e,
            phase1_max_bookings=phase1_max,
            phase2_max_bookings=phase2_max,
        )
        values.update(overrides)
        return await _add(db_session, Event(**values))

    return factory


@pytest_asyncio.fixture
async def event(make_event) -> Event:
    return await make_event()


@pytest_asyncio.fixture
async def invite(db_session: AsyncSession):
    async def factory(event: Event, company: Company) -> EventParticipant:
        return await _add(db_session, EventParticipant(event_id=event.id, company_id=company.id))

    return factory


@pytest_asyncio.fixture
async def make_time_range(db_session: AsyncSession):
    async def factory(
        event: Event,
        start: time = time(9, 0),
        end: time = time(10, 0),
        day: Optional[date] = None,
        **overrides,
    ) -> TimeRange:
        return await _add(db_session, TimeRange(
            event_id=event.id,
            name="Morning",
            day=day or event.date,
            start_time=start,
            end_time=end,
            **overrides,
        ))

    return factory


@pytest_asyncio.fixture
async def make_slot(db_session: AsyncSession):
    """Slots straight in the table, a week out, for booking tests."""
    base = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=7)

    async def factory(
        event: Event,
        company: Company,
        offset_minutes: int = 0,
        duration_minutes: int = 15,
        capacity: int = 1,
        is_active: bool = True,
    ) -> Slot:
        start = base + timedelta(minutes=offset_minutes)
        return await _add(db_session, Slot(
            event_id=event.id,
            company_id=company.id,
            start_time=start,
            end_time=start + timedelta(minutes=duration_minutes),
            capacity=capacity,
            is_active=is_active,
            version=1,
        ))

    return factory


@pytest_asyncio.fixture
async def slot(make_slot, event, company) -> Slot:
    return await make_slot(event, company)
