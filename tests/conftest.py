"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

import mcprouter.models.database  # noqa: F401  registers table metadata
from mcprouter.config.settings import AuthConfig, Settings
from mcprouter.email.sender import LoggingEmailSender
from mcprouter.storage.kv import InMemoryKeyValueStore
from mcprouter.web.app import create_app
from mcprouter.web.dependencies import build_services

T0 = datetime(2026, 1, 1, 12, 0, 0)


class FakeClock:
    """Controllable clock serving both datetime and epoch-seconds callers."""

    def __init__(self, start: datetime = T0, tick: timedelta | None = None) -> None:
        self.now = start
        self._tick = tick

    def __call__(self) -> datetime:
        current = self.now
        if self._tick is not None:
            self.now = self.now + self._tick
        return current

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def ticking_clock() -> FakeClock:
    """Advances one second on every read, for ordering by creation time."""
    return FakeClock(tick=timedelta(seconds=1))


@pytest.fixture()
def kv(clock: FakeClock) -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(clock=clock.epoch)


@pytest.fixture()
def auth_config() -> AuthConfig:
    return AuthConfig()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret-key",
        debug=True,
        log_level="WARNING",
        _env_file=None,
    )


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def email_sender() -> LoggingEmailSender:
    return LoggingEmailSender()


@pytest.fixture()
def services(settings, async_engine, kv, email_sender, clock):
    return build_services(
        settings,
        engine=async_engine,
        kv=kv,
        email_sender=email_sender,
        clock=clock,
    )


@pytest.fixture()
def app(settings, services):
    """Create a fresh app instance for tests."""
    return create_app(settings=settings, services=services)


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
