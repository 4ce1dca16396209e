"""
tests/conftest.py
Shared fixtures: a fresh in-memory SQLite database per test, an httpx
client bound to the app with get_db overridden, and seeded profiles.
"""

import os

# Must be set before config.settings is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["APP_ENV"] = "test"
os.environ["DEBUG"] = "false"

from contextlib import asynccontextmanager
from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

import shared.models.models  # noqa: F401  (registers tables on Base.metadata)
from config.database import Base, get_db
from main import app
from shared.models.models import Profile, ProfileRole, Service


def owner_headers(profile: Profile) -> dict:
    """Headers identifying the caller as the given profile."""
    return {"X-Profile-Identity": profile.external_identity}


async def make_profile(
    db: AsyncSession,
    identity: str,
    role: ProfileRole,
    balance: str = "0",
    first_name: str = "Test",
    last_name: str = "Member",
    **fields,
) -> Profile:
    profile = Profile(
        external_identity=identity,
        role=role.value,
        first_name=first_name,
        last_name=last_name,
        balance=Decimal(balance),
        **fields,
    )
    db.add(profile)
    await db.commit()
    return profile


async def make_service(
    db: AsyncSession,
    alumni: Profile,
    rate: str = "40.00",
    duration_months: int = 3,
    title: str = "Resume review",
) -> Service:
    service = Service(
        alumni_id=alumni.id,
        title=title,
        description="One-on-one session",
        rate=Decimal(rate),
        duration_months=duration_months,
    )
    db.add(service)
    await db.commit()
    return service


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@asynccontextmanager
async def _bind_client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(session_factory):
    async with _bind_client(session_factory) as ac:
        yield ac


# ── File-backed database ──────────────────────────────────────
# The in-memory engine above shares one connection between sessions.
# These fixtures give every session its own connection so overlapping
# requests run as separate transactions.

@pytest_asyncio.fixture
async def file_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'alumni_connect.db'}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(file_engine):
    return async_sessionmaker(
        bind=file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def file_db(file_session_factory):
    async with file_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def file_client(file_session_factory):
    async with _bind_client(file_session_factory) as ac:
        yield ac


@pytest_asyncio.fixture
async def student(db: AsyncSession) -> Profile:
    return await make_profile(
        db, "user_student_1", ProfileRole.STUDENT, balance="100.00",
        first_name="Asha", last_name="Rao", college="IIT Delhi",
    )


@pytest_asyncio.fixture
async def alumni(db: AsyncSession) -> Profile:
    return await make_profile(
        db, "user_alumni_1", ProfileRole.ALUMNI, balance="0.00",
        first_name="Vikram", last_name="Shah", company="Acme Corp",
        college="IIT Delhi", skills=["python", "system design"],
    )


@pytest_asyncio.fixture
async def service(db: AsyncSession, alumni: Profile) -> Service:
    return await make_service(db, alumni)
