"""
Tests for random id allocation and collision handling.
"""
import asyncio
import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from urlstore.exceptions import CollisionRetriesExhaustedError, DataStoreError
from urlstore.models.item import Item, utcnow
from urlstore.services.id_allocator import IdAllocator, IdGenerator
from urlstore.services.short_code import decode, encode


class SequenceGenerator:
    """Id source replaying a fixed list of ids"""

    def __init__(self, ids):
        self._ids = iter(ids)

    def next_id(self):
        return next(self._ids)


class TestIdGenerator:
    def test_ids_in_range(self):
        generator = IdGenerator()
        for _ in range(1000):
            assert 0 <= generator.next_id() < 2 ** 64

    def test_seeded_generators_agree(self):
        first = IdGenerator(seed=1234)
        second = IdGenerator(seed=1234)

        assert [first.next_id() for _ in range(10)] == [second.next_id() for _ in range(10)]

    def test_unseeded_generators_do_not_share_state(self):
        """Ids come from the OS; issued codes don't reveal the next ones"""
        first = IdGenerator()
        second = IdGenerator()

        assert [first.next_id() for _ in range(10)] != [second.next_id() for _ in range(10)]
        assert isinstance(first._random, random.SystemRandom)
        with pytest.raises(NotImplementedError):
            first._random.getstate()

    def test_shared_between_threads(self):
        """Concurrent draws never observe the same generator state"""
        generator = IdGenerator()

        with ThreadPoolExecutor(max_workers=8) as executor:
            ids = list(executor.map(lambda _: generator.next_id(), range(5000)))

        assert len(set(ids)) == len(ids)


class TestSave:
    """Test the save flow against the dict-backed storage"""

    def test_save_returns_code_of_stored_id(self, fake_storage):
        allocator = IdAllocator(fake_storage, id_generator=SequenceGenerator([123456]))

        code = asyncio.run(allocator.save("https://example.com"))

        assert code == encode(123456)
        assert fake_storage.items[123456].url == "https://example.com"

    def test_collision_retries_with_new_id(self, fake_storage):
        fake_storage.items[1] = Item(id=1, url="https://taken.example")
        fake_storage.items[2] = Item(id=2, url="https://taken.example/2")
        allocator = IdAllocator(
            fake_storage,
            id_generator=SequenceGenerator([1, 2, 3]),
            find_existing=False,
        )

        code = asyncio.run(allocator.save("https://example.com"))

        assert decode(code) == 3
        assert fake_storage.calls["create"] == 3
        assert allocator.collision_count == 2

    def test_collisions_are_logged(self, fake_storage, caplog):
        fake_storage.items[1] = Item(id=1, url="https://taken.example")
        allocator = IdAllocator(fake_storage, id_generator=SequenceGenerator([1, 5]), find_existing=False)

        with caplog.at_level("WARNING", logger="urlstore.services.id_allocator"):
            asyncio.run(allocator.save("https://example.com"))

        assert "Collision on save unique short URL name: 1 times" in caplog.text

    def test_retries_exhausted(self, fake_storage):
        fake_storage.items[7] = Item(id=7, url="https://taken.example")
        allocator = IdAllocator(
            fake_storage,
            id_generator=SequenceGenerator([7] * 4),
            find_existing=False,
            max_attempts=4,
        )

        with pytest.raises(CollisionRetriesExhaustedError):
            asyncio.run(allocator.save("https://example.com"))

        assert allocator.collision_count == 4

    def test_storage_error_not_retried(self, fake_storage, monkeypatch):
        """Only collisions are retried; other failures propagate"""
        attempts = []

        async def broken_create(item):
            attempts.append(item.id)
            raise DataStoreError("connection lost")

        monkeypatch.setattr(fake_storage, "create", broken_create)
        allocator = IdAllocator(fake_storage, find_existing=False)

        with pytest.raises(DataStoreError):
            asyncio.run(allocator.save("https://example.com"))

        assert len(attempts) == 1

    def test_expires_is_stored(self, fake_storage):
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        allocator = IdAllocator(fake_storage, id_generator=SequenceGenerator([9]))

        asyncio.run(allocator.save("https://example.com", expires))

        assert fake_storage.items[9].expires == expires

    def test_invalid_max_attempts(self, fake_storage):
        with pytest.raises(ValueError):
            IdAllocator(fake_storage, max_attempts=0)


class TestFindExisting:
    """Test reuse of codes for identical active URLs"""

    def test_same_url_same_code(self, fake_storage):
        allocator = IdAllocator(fake_storage)

        first = asyncio.run(allocator.save("https://example.com"))
        second = asyncio.run(allocator.save("https://example.com"))

        assert first == second
        assert fake_storage.calls["create"] == 1

    def test_disabled(self, fake_storage):
        allocator = IdAllocator(fake_storage, find_existing=False)

        first = asyncio.run(allocator.save("https://example.com"))
        second = asyncio.run(allocator.save("https://example.com"))

        assert first != second
        assert fake_storage.calls["find"] == 0

    def test_backend_without_find(self, fake_storage):
        """find() is skipped when the backend doesn't support it"""
        fake_storage.supports_find = False
        allocator = IdAllocator(fake_storage)

        asyncio.run(allocator.save("https://example.com"))
        asyncio.run(allocator.save("https://example.com"))

        assert fake_storage.calls["find"] == 0
        assert fake_storage.calls["create"] == 2

    def test_permanent_request_skips_expiring_item(self, fake_storage):
        allocator = IdAllocator(fake_storage)
        expiring = asyncio.run(allocator.save("https://example.com", utcnow() + timedelta(seconds=1)))

        permanent = asyncio.run(allocator.save("https://example.com"))

        assert permanent != expiring
        assert fake_storage.items[decode(permanent)].expires is None

    def test_expiring_request_skips_permanent_item(self, fake_storage):
        allocator = IdAllocator(fake_storage)
        expires = utcnow() + timedelta(hours=1)
        permanent = asyncio.run(allocator.save("https://example.com"))

        expiring = asyncio.run(allocator.save("https://example.com", expires))

        assert expiring != permanent
        assert fake_storage.items[decode(expiring)].expires == expires

    def test_same_expiry_reuses_code(self, fake_storage):
        allocator = IdAllocator(fake_storage)
        expires = utcnow() + timedelta(hours=1)

        first = asyncio.run(allocator.save("https://example.com", expires))
        second = asyncio.run(allocator.save("https://example.com", expires))

        assert first == second
        assert fake_storage.calls["find"] == 2
        assert fake_storage.calls["create"] == 1
