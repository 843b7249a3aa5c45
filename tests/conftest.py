# tests/conftest.py

from __future__ import annotations

import os
from datetime import datetime

# Must be set before careerhub reads its settings
os.environ.setdefault("LOG_FILE", "0")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["REDIS_URL"] = ""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from careerhub.database import init_db, get_db, get_session_factory
from careerhub.middleware.auth import create_access_token
from careerhub.models.user import ROLE_ADMIN
from careerhub.services.ai_service import AIService
from careerhub.services.redis_client import set_redis
from careerhub.services.scheduled_tasks import TaskRunner
from careerhub.utils import metrics

from .fakes import FakeOpenAIClient, RecordingTriggers

# Monday
NOW = datetime(2025, 6, 2, 9, 0, 0)


@pytest.fixture(autouse=True)
def _isolate_globals():
    metrics.reset()
    set_redis(None)
    yield
    set_redis(None)


@pytest_asyncio.fixture()
async def engine():
    """Fresh in-memory database per test; StaticPool keeps the one connection alive."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await init_db(engine, factory)
    return factory


@pytest_asyncio.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def triggers() -> RecordingTriggers:
    return RecordingTriggers()


@pytest.fixture()
def runner(session_factory, triggers) -> TaskRunner:
    return TaskRunner(session_factory, triggers=triggers, clock=lambda: NOW)


@pytest.fixture()
def llm() -> FakeOpenAIClient:
    return FakeOpenAIClient(reply="Here is some advice.", pieces=["Here is ", "some advice."])


@pytest.fixture()
def ai_service(llm) -> AIService:
    return AIService(clients={"sambanova": llm})


@pytest_asyncio.fixture()
async def client(session_factory, ai_service):
    """
    API client against the real app with the test database and a fake LLM.

    The lifespan is not run, so no scheduler and no Redis.
    """
    from careerhub.main import app
    from careerhub.routes import ai_chat

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[ai_chat.get_ai_service] = lambda: ai_service
    ai_chat.limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    ai_chat.limiter.enabled = True


def auth_headers(user_id: int, role_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role_id)}"}


@pytest.fixture()
def admin_headers() -> dict:
    return auth_headers(1, ROLE_ADMIN)
