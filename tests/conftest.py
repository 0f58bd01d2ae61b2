import sys, os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from masjid_dashboard.database import Base, get_db
from masjid_dashboard.dependencies import AdminIdentity, require_admin, websocket_admin
from masjid_dashboard.main import app
from masjid_dashboard.models import ActivityLog
from masjid_dashboard.services.admin_notifier import AdminNotificationService, AdminRecipient
from masjid_dashboard.services.connections import AdminConnectionManager

# In-memory SQLite for tests, isolated from the real DB
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_ADMIN = AdminIdentity(username="imam", role="admin")


class FakeChannel:
    """Notification channel that records what it was sent."""

    def __init__(self, fail: bool = False, open_: bool = True) -> None:
        self.sent: list[str] = []
        self.fail = fail
        self.open = open_

    async def send(self, message: str) -> None:
        if self.fail:
            raise ConnectionError("socket went away")
        self.sent.append(message)

    def is_open(self) -> bool:
        return self.open


def static_admins(*ids: str):
    async def resolve():
        return [AdminRecipient(id=admin_id, email=f"{admin_id}@masjid.test") for admin_id in ids]
    return resolve


@pytest.fixture
def fake_channel_factory():
    return FakeChannel


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notification_service() -> AdminNotificationService:
    return AdminNotificationService(static_admins(TEST_ADMIN.username), dispatch_delay=0)


@pytest_asyncio.fixture
async def client(session_factory, notification_service) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[require_admin] = lambda: TEST_ADMIN
    app.dependency_overrides[websocket_admin] = lambda: TEST_ADMIN
    app.state.notification_service = notification_service
    app.state.admin_connections = AdminConnectionManager(notification_service)

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    await notification_service.shutdown()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seed_activities(db_session):
    """Insert rows with explicit, distinct timestamps (oldest first)."""

    async def seed(*rows: dict, start: datetime | None = None) -> list[ActivityLog]:
        base = start or datetime.now(timezone.utc) - timedelta(hours=len(rows))
        entries = []
        for offset, row in enumerate(rows):
            entry = ActivityLog(
                user=row.get("user", "Unknown"),
                role=row.get("role", "user"),
                action=row.get("action", "Unknown Action"),
                details=row.get("details", ""),
                success=row.get("success"),
                timestamp=row.get("timestamp", base + timedelta(minutes=offset)),
            )
            db_session.add(entry)
            entries.append(entry)
        await db_session.commit()
        return entries

    return seed
