"""
Shared fixtures: a fresh SQLite database per test and an HTTP client bound to the app.
"""

import os
import tempfile
from dataclasses import dataclass

# must be set before app modules read settings
os.environ.setdefault("MEDIA_ROOT", tempfile.mkdtemp(prefix="giftdesk-media-"))
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.core.config import settings
from app.core.db import Base, get_db
from app.main import app as fastapi_app
from app.services.events import create_event, set_status
from app.services.gifts import create_gift
from app.services.users import create_user
from tests.factories import bearer, png


@dataclass
class Scenario:
    admin_id: int
    agent_id: int
    other_agent_id: int
    gift_ids: list[int]
    event_id: int


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    import bcrypt

    real_gensalt = bcrypt.gensalt
    monkeypatch.setattr(bcrypt, "gensalt", lambda rounds=12, prefix=b"2b": real_gensalt(4, prefix))


@pytest.fixture(autouse=True)
def media_root(tmp_path, monkeypatch):
    root = tmp_path / "media"
    root.mkdir()
    monkeypatch.setattr(settings, "MEDIA_ROOT", str(root))
    return root


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def scenario(session_factory) -> Scenario:
    """Admin, two agents, two gifts and one active event assigned to the first agent."""
    async with session_factory() as db:
        admin = await create_user(db, name="Admin", username="admin", password="admin123", role="admin")
        agent = await create_user(db, name="Agent A", username="agent_a", password="agent123")
        other = await create_user(db, name="Agent B", username="agent_b", password="agent123")
        g1 = await create_gift(db, name="Silver Bowl", image=png())
        g2 = await create_gift(db, name="Tea Set", image=png())
        event = await create_event(
            db,
            event_name="Sharma Wedding",
            contact_person="R. Sharma",
            contact_no="+91 98765 43210",
            function_name="Reception",
            function_type="Wedding",
            agent_id=agent.id,
            gift_ids=[g1.id, g2.id],
            event_date="2026-12-01",
        )
        await set_status(db, event_id=event.id, status="active")

        return Scenario(
            admin_id=int(admin.id),
            agent_id=int(agent.id),
            other_agent_id=int(other.id),
            gift_ids=[int(g1.id), int(g2.id)],
            event_id=int(event.id),
        )


@pytest.fixture
def admin_headers(scenario) -> dict:
    return bearer(scenario.admin_id, "admin")


@pytest.fixture
def agent_headers(scenario) -> dict:
    return bearer(scenario.agent_id, "agent")
