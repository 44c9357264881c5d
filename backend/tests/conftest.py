"""
Test Configuration and Fixtures
================================

Central configuration for pytest with all shared fixtures.

Features:
- Shared-connection in-memory SQLite store per test
- File-backed SQLite store for concurrency tests
- Settings with cheap Argon2 parameters
- Controllable clock shared by every service
- Recording notification channels
- Service container and ASGI client for route tests
"""

import os
from datetime import datetime, timedelta, UTC
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

# Set testing environment before importing app modules
os.environ["WATCHPOST_ENVIRONMENT"] = "testing"
os.environ["WATCHPOST_SECRET_KEY"] = "test-secret-key-for-testing-only-min-32-chars"
os.environ["WATCHPOST_DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["WATCHPOST_MONITOR_AUTOSTART"] = "false"

from watchpost.core.config import Settings
from watchpost.core.enums import ChannelType
from watchpost.core.security import create_access_token
from watchpost.db.session import create_all_tables, create_engine_from_settings
from watchpost.db.store import SQLAlchemyEventStore
from watchpost.main import create_app
from watchpost.services.channels import (
    ChannelRegistry,
    DeliveryResult,
    NotificationChannel,
    NotificationMessage,
)
from watchpost.services.container import ServiceContainer, build_container
from watchpost.services.security_monitor import SecurityMonitor


TEST_SECRET_KEY = "test-secret-key-for-testing-only-min-32-chars"


# =====================================
# Test Doubles
# =====================================

class FakeClock:
    """Settable time source passed to every service as ``clock``."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 10, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingChannel(NotificationChannel):
    """Channel that records every message instead of delivering it."""

    def __init__(self, channel_type: ChannelType, fail: bool = False, raises: Optional[Exception] = None):
        self.channel_type = channel_type
        self.fail = fail
        self.raises = raises
        self.sent: List[Tuple[Dict[str, Any], NotificationMessage]] = []

    async def send(self, config: Dict[str, Any], message: NotificationMessage) -> DeliveryResult:
        self.sent.append((config, message))
        if self.raises is not None:
            raise self.raises
        if self.fail:
            return DeliveryResult.failed("gateway rejected the message")
        return DeliveryResult.ok()


# =====================================
# Settings & Time
# =====================================

@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated test run."""
    return Settings(
        ENVIRONMENT="testing",
        SECRET_KEY=TEST_SECRET_KEY,
        DATABASE_URL="sqlite+aiosqlite://",
        LOG_FORMAT="console",
        ARGON2_TIME_COST=1,
        ARGON2_MEMORY_COST=1024,
        ARGON2_PARALLELISM=1,
        BACKUP_CODES_COUNT=4,
        SECURITY_ALERT_EMAILS=["security@example.com"],
        HEALTH_CHECK_TIMEOUT_SECONDS=2.0,
        MONITOR_AUTOSTART=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =====================================
# Database Fixtures
# =====================================

@pytest.fixture
async def store(settings: Settings) -> AsyncIterator[SQLAlchemyEventStore]:
    """
    Fresh in-memory store for each test.

    All tables are created up front; the engine is disposed afterwards.
    """
    engine = create_engine_from_settings(settings)
    await create_all_tables(engine)
    event_store = SQLAlchemyEventStore(engine)
    try:
        yield event_store
    finally:
        await event_store.dispose()


@pytest.fixture
async def file_store(tmp_path) -> AsyncIterator[SQLAlchemyEventStore]:
    """
    Store on a SQLite file with a fresh connection per session.

    Concurrent sessions really overlap here, which the shared in-memory
    connection cannot do. Writers wait on SQLite's busy timeout.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'watchpost.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    await create_all_tables(engine)
    event_store = SQLAlchemyEventStore(engine)
    try:
        yield event_store
    finally:
        await event_store.dispose()


@pytest.fixture
async def file_container(
    settings: Settings,
    file_store: SQLAlchemyEventStore,
    channel_registry: ChannelRegistry,
    clock: FakeClock,
) -> AsyncIterator[ServiceContainer]:
    """Every service wired over the file-backed store."""
    services = build_container(
        settings=settings,
        store=file_store,
        channel_registry=channel_registry,
        clock=clock,
    )
    await services.alerting.initialize()
    try:
        yield services
    finally:
        await services.monitor.stop_monitoring()


@pytest.fixture
def make_profile(store: SQLAlchemyEventStore):
    """Factory inserting a row into the identity directory."""

    async def _make(email: str = "user@example.com", user_id: Optional[str] = None) -> Dict[str, Any]:
        return await store.insert("profiles", {"id": user_id or str(uuid4()), "email": email.lower()})

    return _make


# =====================================
# Notification Channels
# =====================================

@pytest.fixture
def channels() -> Dict[ChannelType, RecordingChannel]:
    return {channel_type: RecordingChannel(channel_type) for channel_type in ChannelType}


@pytest.fixture
def channel_registry(channels: Dict[ChannelType, RecordingChannel]) -> ChannelRegistry:
    registry = ChannelRegistry()
    for channel in channels.values():
        registry.register(channel)
    return registry


# =====================================
# Service Fixtures
# =====================================

@pytest.fixture(autouse=True)
def reset_monitor_singleton():
    """Every test starts from a fresh monitor instance."""
    SecurityMonitor.reset_instance()
    yield
    SecurityMonitor.reset_instance()


@pytest.fixture
async def container(
    settings: Settings,
    store: SQLAlchemyEventStore,
    channel_registry: ChannelRegistry,
    clock: FakeClock,
) -> AsyncIterator[ServiceContainer]:
    """Every service wired over the test store, with default rules seeded."""
    services = build_container(
        settings=settings,
        store=store,
        channel_registry=channel_registry,
        clock=clock,
    )
    await services.alerting.initialize()
    try:
        yield services
    finally:
        await services.monitor.stop_monitoring()


# =====================================
# HTTP Fixtures
# =====================================

@pytest.fixture
async def client(container: ServiceContainer) -> AsyncIterator[httpx.AsyncClient]:
    """
    ASGI client over an app built around the test container.

    The lifespan is not run; the container fixture already created the
    tables and seeded the rules.
    """
    app = create_app(container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client


def _auth_headers(settings: Settings, subject: str, roles: List[str]) -> Dict[str, str]:
    token = create_access_token(subject, roles=roles, settings=settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(settings: Settings) -> Dict[str, str]:
    return _auth_headers(settings, "admin-user", ["admin"])


@pytest.fixture
def service_headers(settings: Settings) -> Dict[str, str]:
    return _auth_headers(settings, "auth-backend", ["service"])


@pytest.fixture
def user_headers(settings: Settings) -> Dict[str, str]:
    return _auth_headers(settings, "user-1", ["user"])
