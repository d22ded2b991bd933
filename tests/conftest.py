"""
Shared fixtures: a throwaway SQLite database seeded with the demo menu,
in-process notifier, mock checkout and an ASGI client bound to the app.
"""

import os

os.environ.setdefault("ENV_MODE", "development")

from datetime import timedelta

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from tableorder.core.config import DEFAULT_WEBHOOK_SECRET, get_settings
from tableorder.database import init_db, make_session_factory
from tableorder.models import TableToken, utcnow
from tableorder.seed import TABLE_TOKENS, seed_demo_data
from tableorder.services import (
    BillingService,
    CartLine,
    OrderGateway,
    OrderStore,
    StatusTransitionEngine,
)
from tableorder.services.notifications import InMemoryChangeNotifier
from tableorder.services.payment import MockPaymentService

T1_TOKEN = TABLE_TOKENS["T1"]


@pytest.fixture
async def engine(tmp_path):
    # NullPool: every session opens its own connection, so separate
    # sessions behave like separate staff devices
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = make_session_factory(engine)
    async with factory() as session:
        await seed_demo_data(session)
        session.add(TableToken(
            table_id="T99",
            token="EXPIRED000",
            expires_at=utcnow() - timedelta(minutes=1),
        ))
        await session.commit()
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def notifier():
    notifier = InMemoryChangeNotifier(queue_size=100)
    yield notifier
    await notifier.close()


@pytest.fixture
def events(notifier):
    """Every change event published during the test, in order."""
    received = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def payment_service():
    return MockPaymentService()


@pytest.fixture
def gateway(session, notifier):
    return OrderGateway(session, notifier)


@pytest.fixture
def engine_service(session, notifier):
    return StatusTransitionEngine(session, notifier)


@pytest.fixture
def billing(session, notifier, payment_service):
    return BillingService(session, notifier, payment_service)


@pytest.fixture
def place_order(session_factory, notifier):
    """Create an order on T1 through the gateway; returns its id."""

    async def place(*lines):
        lines = lines or (("MENU001", 2),)
        async with session_factory() as session:
            return await OrderGateway(session, notifier).submit(
                "T1", T1_TOKEN, [CartLine(menu_item_id, qty) for menu_item_id, qty in lines]
            )

    return place


@pytest.fixture
def item_ids(session_factory):
    async def fetch(order_id):
        async with session_factory() as session:
            order = await OrderStore(session).require_order(order_id)
            return [item.order_item_id for item in order.items]

    return fetch


@pytest.fixture
def app(session_factory, notifier, payment_service):
    from tableorder.database import get_db
    from tableorder.main import app
    from tableorder.services.notifications import get_change_notifier
    from tableorder.services.payment import get_payment_service

    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_change_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def api(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"X-Webhook-Secret": get_settings().webhook_secret or DEFAULT_WEBHOOK_SECRET},
    ) as client:
        yield client
