"""
Random id allocation for new short links.

Ids are drawn uniformly from the unsigned 64-bit space instead of a
sequence, so codes cannot be enumerated. Uniqueness is enforced by the
storage: a colliding create() raises ItemDuplicatedError and the allocator
simply draws again.
"""

import logging
import random
import threading
from datetime import datetime
from typing import Optional

from urlstore.exceptions import CollisionRetriesExhaustedError, ItemDuplicatedError
from urlstore.models.item import Item
from urlstore.services.short_code import encode
from urlstore.storage.strategies import LinkStorageStrategy

logger = logging.getLogger(__name__)


class IdGenerator:
    """
    Thread-safe source of random 64-bit ids.

    Unseeded generators draw from the operating system's CSPRNG, so issued
    codes reveal nothing about the next ones. A seed switches to a
    deterministic Mersenne Twister and is meant for tests only.

    One generator is shared by all workers of an allocator; the lock keeps
    concurrent draws from reading the same generator state.
    """

    def __init__(self, seed: Optional[int] = None):
        if seed is None:
            self._random = random.SystemRandom()
        else:
            self._random = random.Random(seed)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return self._random.getrandbits(64)


class IdAllocator:
    """
    Save orchestrator: allocate an id, persist the item, return its code.

    Process:
    1. Optionally reuse the id of an active item with the same URL and expiry
    2. Draw a random id and create(); on collision draw again
    3. Encode the id as a short code

    The 2^64 id space makes collisions negligible, but correctness doesn't
    depend on it: any run of collisions shorter than `max_attempts` is
    absorbed. The bound only guards against a degenerate random source.
    """

    def __init__(
        self,
        storage: LinkStorageStrategy,
        id_generator: Optional[IdGenerator] = None,
        find_existing: bool = True,
        max_attempts: int = 16
    ):
        """
        Args:
            storage: Backend the items are persisted to
            id_generator: Random id source (a fresh one by default)
            find_existing: Reuse codes of active items with the same URL and
                expiry when the backend supports find()
            max_attempts: create() attempts before giving up
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.storage = storage
        self.id_generator = id_generator or IdGenerator()
        self.find_existing = find_existing
        self.max_attempts = max_attempts
        self._collision_lock = threading.Lock()
        self.collision_count = 0  # Cumulative, for observability only

    async def save(self, url: str, expires: Optional[datetime] = None) -> str:
        """
        Persist a URL and return its short code.

        Raises:
            CollisionRetriesExhaustedError: every attempt collided
            StorageError: any other backend failure (propagated as-is)
        """
        if self.find_existing and self.storage.supports_find:
            existing_id = await self.storage.find(url, expires)
            if existing_id is not None:
                return encode(existing_id)

        collisions = 0
        try:
            for _ in range(self.max_attempts):
                item = Item(id=self.id_generator.next_id(), url=url, expires=expires)
                try:
                    await self.storage.create(item)
                except ItemDuplicatedError:
                    collisions += 1
                    continue
                return encode(item.id)
        finally:
            if collisions:
                with self._collision_lock:
                    self.collision_count += collisions
                logger.warning("Collision on save unique short URL name: %d times", collisions)

        raise CollisionRetriesExhaustedError(
            f"Could not allocate a unique id after {self.max_attempts} attempts"
        )
