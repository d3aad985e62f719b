import os

# The engine is built at import time; point it at SQLite before anything imports the package.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("PAYMENT_CALLBACK_SECRET", None)

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from emasjid_billing.main import app
from emasjid_billing.core.cache import subscription_cache
from emasjid_billing.core.dependencies import get_current_user, get_db
from emasjid_billing.models.base import Base
from emasjid_billing.schemas.token_schema import TokenData


@pytest.fixture(autouse=True)
def clear_subscription_cache():
    subscription_cache.clear()
    yield
    subscription_cache.clear()


# --- Real databases for service tests ---

@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so that concurrent sessions really use separate connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# --- Endpoint tests ---

@pytest.fixture
def mock_db_session():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def override_get_db(mock_db_session):
    async def _override():
        yield mock_db_session
    app.dependency_overrides[get_db] = _override
    yield mock_db_session
    app.dependency_overrides.pop(get_db, None)


def _client_as(user: TokenData):
    app.dependency_overrides[get_current_user] = lambda: user
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def super_admin_client(override_get_db):
    """Client authenticated as a platform super admin."""
    yield from _client_as(TokenData(sub="1", role="super_admin", name="Super Admin"))


@pytest.fixture
def masjid_admin_client(override_get_db):
    """Client authenticated as the admin of masjid-a."""
    yield from _client_as(TokenData(sub="2", role="masjid_admin", tenant_id="masjid-a", name="Imam Ahmad"))


@pytest.fixture
def local_admin_client(override_get_db):
    yield from _client_as(TokenData(sub="3", role="local_admin", local_admin_id=7, name="Siti"))


@pytest.fixture
def anonymous_client(override_get_db):
    with TestClient(app) as client:
        yield client


# --- Builders for service tests ---

@pytest.fixture
def make_subscription(db):
    """Creates a committed subscription and optionally walks it to `status`."""
    from emasjid_billing.core.uow import finalize
    from emasjid_billing.modules.subscription.service import subscription_service
    from emasjid_billing.schemas.subscription_schema import SubscriptionCreate

    async def _make(tenant_id, tier="pro", billing_cycle="monthly", status=None, now=None):
        result = await finalize(
            db,
            await subscription_service.create_subscription(
                db, SubscriptionCreate(tenant_id=tenant_id, tier=tier, billing_cycle=billing_cycle), now=now
            ),
        )
        assert result.ok, result.error
        if status is not None:
            result = await finalize(db, await subscription_service.transition(db, tenant_id, status, now=now))
            assert result.ok, result.error
        return result.value

    return _make


@pytest.fixture
def make_local_admin(db):
    from emasjid_billing.core.uow import finalize
    from emasjid_billing.modules.local_admin.service import capacity_allocator
    from emasjid_billing.schemas.local_admin_schema import LocalAdminCreate

    async def _make(user_id="la-1", max_capacity=None, full_name="Ustaz Hafiz"):
        result = await finalize(
            db,
            await capacity_allocator.create_local_admin(
                db,
                LocalAdminCreate(
                    user_id=user_id,
                    full_name=full_name,
                    email=f"{user_id}@emasjid.my",
                    max_capacity=max_capacity,
                ),
            ),
        )
        assert result.ok, result.error
        return result.value

    return _make
