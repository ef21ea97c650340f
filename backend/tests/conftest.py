"""
Pytest configuration and shared fixtures for the Storefront Order Service tests.

Provides an ASGI test client, in-memory SQLite sessions, order repositories
for both backends, and a notifier whose email client is mocked.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import json
from datetime import datetime
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from models import CartItem, Order, ShippingInfo
from services.notification_service import Notifier
from services.order_storage import MemoryOrderStore, OrderRepository, SqlOrderStore

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"


@pytest.fixture(autouse=True)
def live_gateway(monkeypatch):
    """Every test starts in live mode with no provider credentials."""
    monkeypatch.setattr(settings, "stripe_test_mode", False)
    monkeypatch.setattr(settings, "stripe_secret_key", "")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "")
    monkeypatch.setattr(settings, "internal_api_key", "")


@pytest.fixture
def test_mode(monkeypatch):
    monkeypatch.setattr(settings, "stripe_test_mode", True)


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    In-memory SQLite database per test.

    Uses StaticPool so every session shares the one in-memory connection.
    """
    import db_models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Service Fixtures ─────────────────────────────────────────────────


@pytest.fixture
def memory_repository() -> OrderRepository:
    return OrderRepository(MemoryOrderStore())


@pytest.fixture
def sql_repository(session_factory) -> OrderRepository:
    return OrderRepository(SqlOrderStore(session_factory))


@pytest.fixture
def email_client():
    """Stands in for the Resend client."""
    client = AsyncMock()
    client.send.return_value = {"id": "email_123"}
    return client


@pytest.fixture
def notifier(email_client) -> Notifier:
    return Notifier(email_client=email_client, admin_email="admin@example.com")


@pytest_asyncio.fixture(scope="function")
async def client(memory_repository, notifier, session_factory):
    """
    ASGI client with the lifespan state filled in by hand.

    ASGITransport does not run the lifespan, so the repository and notifier
    are attached to app.state here and get_db is pointed at the test database.
    """
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.order_repository = memory_repository
    app.state.notifier = notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    del app.state.order_repository
    del app.state.notifier


# ── Auth Fixtures ────────────────────────────────────────────────────

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct horse battery staple"


@pytest_asyncio.fixture
async def admin_user(db_session):
    from services.auth_service import create_admin_user

    return await create_admin_user(
        db_session, email=ADMIN_EMAIL, password=ADMIN_PASSWORD, name="Store Admin",
    )


@pytest.fixture
def admin_headers():
    """Bearer session for admin endpoints; no database row needed."""
    from middleware.auth import issue_session_token

    token = issue_session_token(user_id=1, email=ADMIN_EMAIL)
    return {"Authorization": f"Bearer {token}"}


# ── Test Data ────────────────────────────────────────────────────────


SAMPLE_SHIPPING = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "email": "ada@example.com",
    "phone": "555-0100",
    "address": "12 Analytical Way",
    "city": "London",
    "state": "LDN",
    "zipCode": "N1 9GU",
    "country": "GB",
}

SAMPLE_ITEMS = [
    {"id": 1, "name": "Linen Shirt", "category": "Shirts", "price": "$50.00", "quantity": 2},
]


def make_payment_intent(
    intent_id: str = "pi_3Mtw1a2eZvKYlo2C",
    amount: int = 11000,
    shipping=SAMPLE_SHIPPING,
    items=SAMPLE_ITEMS,
    **extra,
) -> dict:
    metadata = {}
    if shipping is not None:
        metadata["shipping"] = json.dumps(shipping)
    if items is not None:
        metadata["items"] = json.dumps(items)
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "usd",
        "status": "succeeded",
        "created": 1700000000,
        "metadata": metadata,
    }
    intent.update(extra)
    return intent


def make_order(
    order_id: str,
    *,
    created_at: datetime,
    total: str = "110.00",
    is_test_mode: bool = False,
    order_status: str = "ordered",
) -> Order:
    return Order(
        order_id=order_id,
        payment_intent_id=order_id,
        customer_email="ada@example.com",
        customer_name="Ada Lovelace",
        shipping=ShippingInfo.model_validate(SAMPLE_SHIPPING),
        items=[CartItem.model_validate(i) for i in SAMPLE_ITEMS],
        subtotal="100.00",
        shipping_cost="10.00",
        total=total,
        is_test_mode=is_test_mode,
        order_status=order_status,
        created_at=created_at,
    )
