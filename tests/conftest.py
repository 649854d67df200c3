import os

import httpx
import pytest
from pydantic import SecretStr
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
from notifyhub.models import Base
from notifyhub.models.order import Order
from notifyhub.models.outbox import NotificationOutbox

from notifyhub.api.deps import get_channel_sender, get_order_hook, get_outbox_store
from notifyhub.channels.recording import RecordingSender
from notifyhub.core.config import settings
from notifyhub.core.db import make_session_factory
from notifyhub.main import app
from notifyhub.services.order_hooks import SqlOrderNotifiedHook
from notifyhub.services.outbox_store import OutboxStore

from outbox_testing import INTERNAL_SECRET


def _test_db_url() -> str:
    # PostgreSQL when DATABASE_URL_TEST is set, otherwise a private in-memory sqlite
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite:///:memory:")


@pytest.fixture
async def async_engine():
    url = _test_db_url()
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}

    engine = create_async_engine(url, **kwargs)
    try:
        # Fresh schema per test
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return make_session_factory(async_engine)


@pytest.fixture
def store(session_factory) -> OutboxStore:
    return OutboxStore(session_factory)


@pytest.fixture
def order_hook(session_factory) -> SqlOrderNotifiedHook:
    return SqlOrderNotifiedHook(session_factory)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def create_order(session_factory):
    async def _create(order_id: str = "ord1", organization_id: str = "org1") -> Order:
        async with session_factory() as db:
            async with db.begin():
                order = Order(id=order_id, organization_id=organization_id)
                db.add(order)
        return order
    return _create


@pytest.fixture
def load_order(session_factory):
    async def _load(order_id: str) -> Order:
        async with session_factory() as db:
            return (await db.execute(select(Order).where(Order.id == order_id))).scalar_one()
    return _load


@pytest.fixture
def outbox_rows(session_factory):
    async def _rows(**filters) -> list[NotificationOutbox]:
        async with session_factory() as db:
            stmt = select(NotificationOutbox).order_by(NotificationOutbox.channel, NotificationOutbox.created_at)
            for name, value in filters.items():
                stmt = stmt.where(getattr(NotificationOutbox, name) == value)
            return list((await db.execute(stmt)).scalars().all())
    return _rows


@pytest.fixture
async def client(store, sender, order_hook, monkeypatch):
    """
    HTTP client wired to the test store/sender via dependency overrides.
    """
    monkeypatch.setattr(settings, "internal_api_secret", SecretStr(INTERNAL_SECRET))

    app.dependency_overrides[get_outbox_store] = lambda: store
    app.dependency_overrides[get_channel_sender] = lambda: sender
    app.dependency_overrides[get_order_hook] = lambda: order_hook

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
