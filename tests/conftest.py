"""
Test configuration and fixtures for the storage core.
This centralizes all test setup, making individual tests clean.
"""

import asyncio
from collections import Counter
from unittest.mock import MagicMock

import fakeredis
import pytest

from urlstore.cache.factory import CacheFactory
from urlstore.exceptions import ItemDuplicatedError, NoLinkError
from urlstore.models.item import as_utc
from urlstore.storage.factory import StorageFactory
from urlstore.storage.strategies import (
    EmbeddedLinkStorage,
    LinkStorageStrategy,
    RedisLinkStorage,
    RelationalLinkStorage,
)


class FakeLinkStorage(LinkStorageStrategy):
    """Dict-backed storage that counts every call, for service-level tests"""

    name = "fake"
    supports_find = True
    supports_clean_expired = True

    def __init__(self):
        self.items = {}
        self.calls = Counter()
        self.events = []

    async def create(self, item):
        self.calls["create"] += 1
        existing = self.items.get(item.id)
        if existing is not None and not existing.is_expired():
            raise ItemDuplicatedError(f"Item {item.id} already exists")
        self.items[item.id] = item

    async def load(self, item_id):
        self.calls["load"] += 1
        item = await self._active(item_id)
        self.items[item_id] = item.model_copy(update={"visits": item.visits + 1})
        return item.url

    async def load_info(self, item_id):
        self.calls["load_info"] += 1
        return await self._active(item_id)

    async def _active(self, item_id):
        item = self.items.get(item_id)
        if item is None or item.is_expired():
            raise NoLinkError(f"Item {item_id} not found")
        return item

    async def find(self, url, expires=None):
        self.calls["find"] += 1
        expires = as_utc(expires)
        for item in self.items.values():
            if item.url == url and item.expires == expires and not item.is_expired():
                return item.id
        return None

    async def clean_expired(self):
        self.calls["clean_expired"] += 1
        expired = [item_id for item_id, item in self.items.items() if item.is_expired()]
        for item_id in expired:
            del self.items[item_id]
        return len(expired)

    async def stat(self):
        return {"backend": self.name, "items": len(self.items)}

    async def close(self):
        self.events.append("close")


@pytest.fixture(autouse=True)
def clear_factories():
    """Factories cache singletons; start every test from scratch"""
    StorageFactory.clear_instance()
    CacheFactory.clear_instance()
    yield
    StorageFactory.clear_instance()
    CacheFactory.clear_instance()


@pytest.fixture
def fake_storage():
    return FakeLinkStorage()


@pytest.fixture(scope="function")
def relational_storage(tmp_path):
    """
    Relational storage on a fresh SQLite file for each test.
    The file lives in tmp_path, so tests are isolated from each other.
    """
    storage = RelationalLinkStorage(f"sqlite:///{tmp_path / 'links.db'}", pool_size=5)
    try:
        yield storage
    finally:
        asyncio.run(storage.close())


@pytest.fixture(scope="function")
def embedded_storage(tmp_path):
    storage = EmbeddedLinkStorage(db_path=str(tmp_path / "embedded.db"), bucket="links", timeout=10.0)
    try:
        yield storage
    finally:
        asyncio.run(storage.close())


@pytest.fixture
def redis_client():
    """Mock Redis client; the two registered Lua scripts are separate mocks"""
    client = MagicMock()
    check_and_set = MagicMock(name="check_and_set", return_value=b"Ok")
    increment_visits = MagicMock(name="increment_visits", return_value=1)
    client.register_script.side_effect = [check_and_set, increment_visits]
    client.check_and_set = check_and_set
    client.increment_visits = increment_visits
    return client


@pytest.fixture
def redis_storage(redis_client):
    return RedisLinkStorage(redis_client, key_prefix="link:")


@pytest.fixture
def live_redis_client():
    """In-process Redis server that runs the Lua scripts for real"""
    client = fakeredis.FakeRedis()
    try:
        yield client
    finally:
        client.flushall()
        client.close()


@pytest.fixture
def live_redis_storage(live_redis_client):
    return RedisLinkStorage(live_redis_client, key_prefix="link:")
