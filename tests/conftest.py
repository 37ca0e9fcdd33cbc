import fnmatch
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from app.api.core.config import settings

# Import all models to ensure they are registered with SQLAlchemy before creating tables
from app.api.modules.v1.payments.models import PaymentEventLedger, VendorSubscription  # noqa: F401
from app.api.modules.v1.payments.service.idempotency_store import _DELETE_PROCESSING_SCRIPT
from app.api.modules.v1.vendors.models.vendor_model import Vendor

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_WEBHOOK_SECRET = "whsec_test_secret"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
def webhook_settings(monkeypatch):
    """Known webhook secret and the database ledger backend for every test."""
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SECRET", SecretStr(TEST_WEBHOOK_SECRET))
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SIGNATURE_SCHEME", "hmac_sha256")
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SIGNATURE_HEADER", "X-Webhook-Signature")
    monkeypatch.setattr(settings, "IDEMPOTENCY_BACKEND", "database")
    return settings


@pytest.fixture(autouse=True, scope="function")
def mock_redis(monkeypatch):
    """
    Mock Redis client for all tests to avoid connection errors.
    This fixture is autouse=True so it applies to all tests automatically.
    """
    # Set a mock Redis URL
    monkeypatch.setattr(settings, "REDIS_URL", "redis://localhost:6379/0")

    # Create a simple in-memory store to simulate Redis behavior
    redis_store = {}
    redis_ttls = {}

    # Create a mock Redis client with async methods
    mock_redis_client = AsyncMock()

    async def mock_get(key):
        return redis_store.get(key)

    async def mock_set(key, value, nx=False, ex=None, **kwargs):
        if nx and key in redis_store:
            return None
        redis_store[key] = str(value)
        if ex is not None:
            redis_ttls[key] = ex
        return True

    async def mock_delete(*keys):
        count = 0
        for key in keys:
            if key in redis_store:
                del redis_store[key]
                redis_ttls.pop(key, None)
                count += 1
        return count

    async def mock_exists(key):
        return 1 if key in redis_store else 0

    async def mock_eval(script, numkeys, key, *args):
        # Mirrors the two ledger Lua scripts: lease-guarded SET and lease-guarded DEL.
        current = redis_store.get(key)
        if current is None:
            return 0
        record = json.loads(current)
        if record["lease_token"] != args[0]:
            return 0
        if script == _DELETE_PROCESSING_SCRIPT:
            if record["status"] != "processing":
                return 0
            del redis_store[key]
            redis_ttls.pop(key, None)
            return 1
        redis_store[key] = args[1]
        redis_ttls[key] = int(args[2])
        return 1

    async def mock_scan_iter(match=None, count=None):
        for key in list(redis_store):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    # Configure the mock methods
    mock_redis_client.get.side_effect = mock_get
    mock_redis_client.set.side_effect = mock_set
    mock_redis_client.delete.side_effect = mock_delete
    mock_redis_client.exists.side_effect = mock_exists
    mock_redis_client.eval.side_effect = mock_eval
    mock_redis_client.scan_iter = mock_scan_iter
    mock_redis_client.close.return_value = None
    mock_redis_client.store = redis_store
    mock_redis_client.ttls = redis_ttls

    # Patch ConnectionPool.from_url to return a mock pool
    mock_pool = MagicMock()
    mock_pool.disconnect = AsyncMock()

    # Patch both the ConnectionPool and Redis client creation
    with (
        patch("redis.asyncio.connection.ConnectionPool.from_url", return_value=mock_pool),
        patch("redis.asyncio.Redis", return_value=mock_redis_client),
    ):
        # Reset the global _redis_client before each test
        import app.api.core.dependencies.redis_service as redis_module

        redis_module._redis_client = None
        redis_module._connection_pool = None
        yield mock_redis_client
        redis_module._redis_client = None
        redis_module._connection_pool = None


@pytest_asyncio.fixture
async def test_session():
    """SQLite session with every table created fresh for the test."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)


@pytest_asyncio.fixture
async def vendor(test_session):
    """A registered vendor with no subscription history."""
    row = Vendor(name="Acme Supplies", slug="acme-supplies")
    test_session.add(row)
    await test_session.commit()
    await test_session.refresh(row)
    return row
