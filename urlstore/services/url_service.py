import logging
from datetime import datetime
from typing import Any, Dict, Optional

from urlstore.cache.strategies import CacheStrategy, NullCache
from urlstore.cleaner.expiry_cleaner import ExpiryCleaner
from urlstore.models.item import Item
from urlstore.services.id_allocator import IdAllocator, IdGenerator
from urlstore.services.short_code import decode
from urlstore.storage.strategies import LinkStorageStrategy

logger = logging.getLogger(__name__)


class URLService:
    """
    Storage core entry point used by the HTTP layer.

    This follows the Dependency Injection pattern:
    - Storage and cache strategies are injected (not created internally)
    - Easy to test (inject mock storage/cache)
    - Flexible (swap implementations without changing code)

    Owns the id allocator and, for storages that support it, the expiry
    cleaner. Token checks, URL validation and status codes belong to the
    caller; this layer raises the core exceptions.
    """

    def __init__(
        self,
        storage: LinkStorageStrategy,
        cache: Optional[CacheStrategy] = None,
        id_generator: Optional[IdGenerator] = None,
        find_existing: bool = True,
        max_collision_retries: int = 16,
        cleaner_interval: float = 3600.0
    ):
        """
        Initialize URL service with dependencies.

        Args:
            storage: Link storage strategy
            cache: Read cache strategy (optional, NullCache when omitted)
            id_generator: Random id source for the allocator
            find_existing: Reuse codes of identical active URLs
            max_collision_retries: create() attempts per save
            cleaner_interval: Seconds between expired-item sweeps
        """
        self.storage = storage
        self.cache = cache or NullCache()
        self.allocator = IdAllocator(
            storage,
            id_generator=id_generator,
            find_existing=find_existing,
            max_attempts=max_collision_retries,
        )
        self.cleaner = (
            ExpiryCleaner(storage, interval=cleaner_interval)
            if storage.supports_clean_expired
            else None
        )

    def start(self):
        """Start background tasks; needs a running event loop"""
        if self.cleaner is not None:
            return self.cleaner.start()
        return None

    async def save(self, url: str, expires: Optional[datetime] = None) -> str:
        """Create a short link and return its code"""
        return await self.allocator.save(url, expires)

    async def load(self, code: str) -> str:
        """
        Resolve a short code using Cache-Aside pattern.

        Flow:
        1. Decode the code (InvalidCodeError for malformed codes)
        2. Check cache first
        3. If cache miss, load from storage (NoLinkError if absent/expired)
        4. Populate cache for next time (best-effort)

        A failing cache is logged and bypassed; it never fails the read.
        """
        item_id = decode(code)

        # Step 1: Try cache first
        try:
            cached_url = await self.cache.get(item_id)
        except Exception as e:
            logger.error("Error on get long url from cache for %s: %s", item_id, e)
            cached_url = None

        if cached_url is not None:
            return cached_url

        # Step 2: Cache MISS - query storage
        url = await self.storage.load(item_id)

        # Step 3: Populate cache for next time
        try:
            await self.cache.set(item_id, url)
        except Exception as e:
            logger.error("Error on set long url to cache for %s: %s", item_id, e)

        return url

    async def load_info(self, code: str) -> Item:
        """Full record of a short code (bypasses the cache)"""
        return await self.storage.load_info(decode(code))

    async def stat(self) -> Dict[str, Any]:
        """Storage diagnostics plus cache and allocator statistics"""
        return {
            "storage": await self.storage.stat(),
            "cache": self.cache.stats(),
            "collisions": self.allocator.collision_count,
            "cleaner": {
                "running": self.cleaner.running,
                "ticks": self.cleaner.tick_count,
                "failed_ticks": self.cleaner.failed_tick_count,
                "deleted": self.cleaner.deleted_count,
            } if self.cleaner is not None else None,
        }

    async def close(self):
        """Stop the cleaner (waiting for a running sweep), then close the storage"""
        if self.cleaner is not None:
            await self.cleaner.stop()
        await self.storage.close()
