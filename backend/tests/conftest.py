"""Shared test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection through StaticPool) with all tables created, so store calls that
open their own sessions see each other's commits.
"""

import hashlib
import hmac
import json
import time
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (register all tables on Base.metadata)
from app.api.deps import get_session_factory
from app.auth.jwt import create_access_token
from app.billing.plans import Plan, build_plans
from app.billing.reconciler import Reconciler
from app.config import Settings, get_settings
from app.database import Base, build_session_factory
from app.main import app
from app.services.subscription_store import SubscriptionStore

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-supabase-jwt-secret"

# Fixed clock for the reconciler
NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        supabase_jwt_secret=JWT_SECRET,
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_secret_key="sk_test_dummy",
        stripe_solo_price_id="price_solo_test",
        stripe_seasonal_price_id="price_seasonal_test",
        form_worker_url="http://worker.test",
        form_worker_token="worker-token",
    )


@pytest.fixture
def plans(test_settings: Settings) -> dict[str, Plan]:
    """Plan catalog carrying the test price IDs."""
    return build_plans(test_settings)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SubscriptionStore:
    return SubscriptionStore(session_factory)


@pytest.fixture
def reconciler(store: SubscriptionStore) -> Reconciler:
    return Reconciler(store, clock=lambda: NOW)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test database and settings.

    ASGITransport does not run the lifespan, so collaborators that live on
    ``app.state`` in production are supplied through dependency overrides.
    """
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(user_id: uuid.UUID, test_settings: Settings) -> dict[str, str]:
    """Return Authorization headers carrying a valid access token for ``user_id``."""
    token = create_access_token(str(user_id), email="user@taxmate.test", config=test_settings)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Stripe payload helpers
# ---------------------------------------------------------------------------


def make_event_payload(event_type: str, data_object: dict, event_id: str | None = None) -> bytes:
    """Serialize a Stripe-shaped event body."""
    body = {
        "id": event_id or f"evt_test_{uuid.uuid4().hex[:8]}",
        "object": "event",
        "type": event_type,
        "created": 1768478400,
        "data": {"object": data_object},
    }
    return json.dumps(body, indent=2).encode("utf-8")


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a ``stripe-signature`` header the way Stripe does."""
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


@pytest.fixture
def event_payload():
    return make_event_payload


@pytest.fixture
def sign():
    return sign_payload
