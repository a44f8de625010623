"""
Shared fixtures: a throwaway SQLite database per test, the FastAPI app wired
to it, and signed bearer tokens.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

# Settings are cached on first use, so the environment is fixed before tela loads
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FF_USE_AUTH"] = "true"
os.environ["FF_USE_REDIS"] = "false"
os.environ["FF_USE_S3"] = "false"
os.environ["FF_USE_LLM"] = "false"
os.environ["LOCAL_STORAGE_PATH"] = tempfile.mkdtemp(prefix="tela-test-")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tela.core import dependencies
from tela.core.database import Base, json_serializer, session_scope
from tela.factory import create_app
from tela.core.plans import Plan, get_plan_limits
from tela.models import Account  # registers every table on Base.metadata

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def make_token(user_id: str = USER_ID, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
    payload = {
        "sub": user_id,
        "email": f"{user_id}@example.com",
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def bearer(user_id: str = USER_ID) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", json_serializer=json_serializer
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def account(db_session: AsyncSession) -> Account:
    """A free-plan account for USER_ID."""
    acct = Account(
        user_id=USER_ID,
        email="user-1@example.com",
        plan=Plan.FREE.value,
        credits=get_plan_limits(Plan.FREE.value).monthly_credits,
    )
    db_session.add(acct)
    # Committed so API requests on other connections can see it
    await db_session.commit()
    return acct


@pytest.fixture
def app(session_factory):
    app = create_app()

    async def override_get_db():
        async with session_scope(session_factory) as session:
            yield session

    app.dependency_overrides[dependencies.get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Client authenticated as USER_ID."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=bearer(USER_ID),
    ) as ac:
        yield ac


@pytest.fixture
async def anon_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
