# aisaint/conftest.py
import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import insert

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

from aisaint.core.config import settings
from aisaint.core.database import (
    create_all_tables,
    create_engine,
    create_session_factory,
    customers,
    users,
)
from aisaint.core.metrics import METRICS
from aisaint.features.chat.service import ChatService
from aisaint.features.conversations.store import ConversationStore
from aisaint.features.entitlements.service import EntitlementResolver
from aisaint.features.usage.service import QuotaEnforcer
from aisaint.tests.mocks import FakeGenerator


@pytest.fixture
def db_url(tmp_path):
    """Fresh sqlite database file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'aisaint-test.db'}"


@pytest_asyncio.fixture
async def engine(db_url):
    eng = create_engine(db_url)
    await create_all_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return ConversationStore(session_factory)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def chat_service(store, generator):
    return ChatService(
        store=store,
        resolver=EntitlementResolver.default(store),
        quota=QuotaEnforcer(store),
        generator=generator,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def allow_user_header(monkeypatch):
    """Trust X-User-Id for the duration of a test."""
    monkeypatch.setattr(settings, "AUTH_ALLOW_USER_HEADER", True)
    yield


async def seed_user(engine, user_id, message_count=0, is_premium=None, subscription_tier=None):
    async with engine.begin() as conn:
        await conn.execute(
            insert(users).values(
                user_id=user_id,
                message_count=message_count,
                is_premium=is_premium,
                subscription_tier=subscription_tier,
            )
        )


async def seed_customer(engine, user_id, active, product_id=None, entitlement_id=None):
    from aisaint.core.config import PREMIUM_ENTITLEMENT_ID, PREMIUM_PRODUCT_ID

    subscriptions = {
        product_id or PREMIUM_PRODUCT_ID: {
            "entitlements": {entitlement_id or PREMIUM_ENTITLEMENT_ID: {"active": active}},
        }
    }
    async with engine.begin() as conn:
        await conn.execute(insert(customers).values(user_id=user_id, subscriptions=subscriptions))


@pytest.fixture
def seed():
    """Async seeding helpers: `await seed.user(engine, ...)`."""
    class _Seed:
        user = staticmethod(seed_user)
        customer = staticmethod(seed_customer)

    return _Seed()


@pytest_asyncio.fixture
async def app(db_url, generator):
    """App with its lifespan running against a per-test database."""
    from aisaint.main import create_app

    application = create_app(database_url=db_url, generator=generator)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
