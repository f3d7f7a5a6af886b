"""Shared test fixtures for edit lock tests."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from editlock.config import Settings, get_settings
from editlock.database import Base, get_db
from editlock.main import app
from editlock.models import Admin, Document, User
from editlock.services.edit_lock import EditLockService
from editlock.utils.auth import issue_session_token
from editlock.utils.deps import get_clock

SECRET = "test-secret"
BASE_URL = "http://docs.test"

ALICE, BOB, CAROL = 1, 2, 3
NOTES, ROADMAP = 1, 2


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        secret_key=SECRET,
        base_url=BASE_URL,
        heartbeat_interval=300,
        lock_window=600,
    )


@pytest.fixture
async def session_maker():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with maker() as db:
        db.add_all([
            User(id=ALICE, username="alice", display_name="Alice Liddell"),
            User(id=BOB, username="bob"),
            User(id=CAROL, username="carol", display_name="Carol Admin"),
            Document(id=NOTES, title="Meeting notes", slug="meeting-notes"),
            Document(id=ROADMAP, title="Roadmap", slug="roadmap"),
        ])
        await db.flush()
        db.add(Admin(user_id=CAROL))
        await db.commit()

    yield maker
    await engine.dispose()


@pytest.fixture
async def session(session_maker):
    async with session_maker() as db:
        yield db


@pytest.fixture
def make_service(session, settings, clock):
    """Build a fresh service, as each request would."""

    def _make() -> EditLockService:
        return EditLockService(session, settings, clock=clock)

    return _make


@pytest.fixture
def auth():
    def _headers(user_id: int) -> dict:
        return {"Authorization": f"Bearer {issue_session_token(user_id, SECRET)}"}

    return _headers


@pytest.fixture
async def client(session_maker, settings, clock):
    async def override_get_db():
        async with session_maker() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as ac:
        yield ac

    app.dependency_overrides.clear()
