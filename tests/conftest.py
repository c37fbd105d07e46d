"""Shared pytest fixtures for Carbon Survey tests."""
import os

# Settings are read at import time by carbonsurvey.database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carbonsurvey.database import Base, enable_sqlite_savepoints, get_db
from carbonsurvey.main import app
from carbonsurvey.models import SurveyTemplate, User
from carbonsurvey.utils.security import create_access_token, hash_password


@pytest.fixture
def sample_questions():
    """The two-question template behind the 100 kWh / 20 bags worked example."""
    return [
        {"id": "electricity", "text": "Electricity used last month", "unit": "kWh", "coefficient": 0.45},
        {"id": "waste", "text": "General waste bags thrown away", "unit": "bags", "coefficient": 1.2},
    ]


@pytest.fixture
def sample_answers():
    return [("electricity", 100.0), ("waste", 20.0)]


@pytest.fixture
def sample_survey_payload():
    """A survey body as the data-collection client sends it (camelCase)."""
    return {
        "householdId": "HH-0042",
        "householdAddress": "12 Acacia Avenue, Springfield",
        "occupants": 2,
        "area": 85.5,
        "responses": [
            {"questionId": "electricity", "value": 100},
            {"questionId": "waste", "value": 20},
        ],
    }


# ── Database ────────────────────────────────────────────────────────────────

@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test, schema created from the models."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """HTTP client bound to the app with ``get_db`` pointed at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Users ───────────────────────────────────────────────────────────────────

@pytest.fixture
async def designer(db_session):
    user = User(
        username="designer@example.com",
        email="designer@example.com",
        name="Dana Designer",
        password=hash_password("s3cret-pass"),
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def auth_headers(designer):
    return {"Authorization": f"Bearer {create_access_token(designer)}"}


@pytest.fixture
async def stored_template(db_session, designer, sample_questions):
    template = SurveyTemplate(
        name="Household Energy",
        description="Monthly energy and waste",
        code="CS-2024-ABC123",
        questions=sample_questions,
        created_by=designer.id,
    )
    db_session.add(template)
    await db_session.commit()
    return template
