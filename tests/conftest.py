"""Pytest configuration and fixtures."""

import os

# Must be set before shortlinks.core.setting is imported.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./shortlinks-test.db")

from typing import AsyncGenerator

import pytest

from shortlinks.core.setting import settings
from shortlinks.db.adapters import SQLiteAdapter
from shortlinks.db.session import build_session_maker, create_db_and_tables
from shortlinks.services.client_meta import VisitContext
from shortlinks.services.link_registry import LinkRegistry
from shortlinks.services.resolution_service import ResolutionService
from shortlinks.services.visit_recorder import VisitRecorder

from sample_agents import CHROME_DESKTOP_UA


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Keep bcrypt cheap in tests."""
    monkeypatch.setattr(settings, "PASSWORD_BCRYPT_ROUNDS", 4)


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite per test so concurrent sessions get real connections."""
    engine = SQLiteAdapter().create_engine(f"sqlite+aiosqlite:///{tmp_path / 'shortlinks.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_maker(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator:
    async with session_factory() as session:
        yield session


@pytest.fixture
def registry(session) -> LinkRegistry:
    return LinkRegistry(session)


@pytest.fixture
def recorder(session_factory) -> VisitRecorder:
    return VisitRecorder(session_factory, adapter=SQLiteAdapter())


@pytest.fixture
def resolver(session, recorder) -> ResolutionService:
    return ResolutionService(session, recorder)


@pytest.fixture
def visit_context() -> VisitContext:
    return VisitContext(
        remote_address="203.0.113.7",
        user_agent=CHROME_DESKTOP_UA,
        accept_language="en-US,en;q=0.9",
        referrer=None,
    )
