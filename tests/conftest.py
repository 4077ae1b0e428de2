import os
import tempfile

# Settings are read at import time, so point them at a scratch database first.
_TMP_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["REALTIME_ENABLED"] = "0"

import pytest

from marketplace.accounts.service import create_supplier, create_vendor
from marketplace.app import create_app
from marketplace.common.config import settings
from marketplace.common.database import engine, init_db
from marketplace.common.db import Base
from marketplace.groups.service import create_group


class FakeRedis:
    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr("marketplace.groups.service.get_redis", _get_redis)
    monkeypatch.setattr(settings, "REALTIME_ENABLED", True)
    return fake


@pytest.fixture
async def supplier():
    return await create_supplier({"full_name": "Ravi Traders", "mobile_number": "9800000001", "city": "Pune"})


@pytest.fixture
async def vendor():
    return await create_vendor({"full_name": "Asha Patil", "mobile_number": "9800000101", "stall_name": "Asha Chaat"})


@pytest.fixture
async def other_vendor():
    return await create_vendor({"full_name": "Imran Shaikh", "mobile_number": "9800000102", "stall_name": "Imran Vada Pav"})


@pytest.fixture
def make_group(supplier):
    async def _make(quantity=100, **extra):
        data = {
            "product": "Onions",
            "quantity": quantity,
            "location": "Shivaji Nagar",
            "deadline": "2030-01-01T10:00:00Z",
            "created_by": supplier["id"],
        }
        data.update(extra)
        return await create_group(data)

    return _make


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()
