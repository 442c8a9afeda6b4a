import os

# Must run before livestockway.core.config is imported anywhere
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("TASK_QUEUE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_config")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_config")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_config")

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from livestockway.core.queue import InMemoryTaskQueue
from livestockway.db import Base
import livestockway.models.hauler  # noqa: F401
import livestockway.models.payment  # noqa: F401
import livestockway.models.subscription  # noqa: F401
import livestockway.models.webhook  # noqa: F401
from livestockway.services.webhook_dispatcher import process_stripe_event

from billing_helpers import FakeStripeGateway, build_event


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    db_path = tmp_path / "payments_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeStripeGateway()


@pytest.fixture
def task_queue():
    return InMemoryTaskQueue()


@pytest.fixture
def deliver(session_maker, gateway, task_queue):
    """Sign and process one webhook event in its own session, like a real request."""

    async def _deliver(event_type, obj, *, event_id=None, created=None):
        body, header = build_event(event_type, obj, event_id=event_id, created=created)
        async with session_maker() as session:
            return await process_stripe_event(
                session, payload=body, signature=header, gateway=gateway, task_queue=task_queue
            )

    return _deliver


@pytest.fixture
def count_rows(session_maker):
    async def _count(model, *criteria):
        async with session_maker() as session:
            stmt = select(func.count()).select_from(model)
            if criteria:
                stmt = stmt.where(*criteria)
            return (await session.execute(stmt)).scalar_one()

    return _count


@pytest.fixture
def fetch(session_maker):
    async def _fetch(model, pk):
        async with session_maker() as session:
            return await session.get(model, pk)

    return _fetch
