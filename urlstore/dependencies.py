"""
Dependency wiring for the storage core.

This module provides singleton instances of storage, cache and the
URLService built from settings, for whatever outer layer (HTTP app, CLI,
worker) hosts the core.

Pattern: Dependency Injection
- Loose coupling between components
- Easy to test (inject mocks)
- Flexible (swap implementations via config)
"""

import logging
from functools import lru_cache

from urlstore.cache.factory import CacheFactory, CacheBackend
from urlstore.cache.strategies import CacheStrategy
from urlstore.config import settings
from urlstore.logging_config import setup_logging
from urlstore.services.url_service import URLService
from urlstore.storage.factory import StorageFactory, StorageBackend
from urlstore.storage.strategies import LinkStorageStrategy

logger = logging.getLogger(__name__)


@lru_cache()
def get_storage() -> LinkStorageStrategy:
    """
    Get storage instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once.

    Raises:
        DataStoreError: the configured backend is unreachable (fatal at startup)
    """
    backend = StorageBackend(settings.storage_backend)
    return StorageFactory.create(backend)


@lru_cache()
def get_cache() -> CacheStrategy:
    """
    Get cache instance (singleton).

    Factory gets config from settings internally.
    @lru_cache ensures this is called only once.
    """
    backend = CacheBackend(settings.cache_backend)
    return CacheFactory.create(backend)


@lru_cache()
def get_url_service() -> URLService:
    """
    Get URLService with all dependencies injected.

    Logging is configured here because this is the first thing a host
    process asks for. Call `start()` on the result from inside the event
    loop to launch the expiry cleaner, and `close()` on shutdown.
    """
    setup_logging(settings.log_level, log_file=settings.log_file, json_format=settings.log_json)
    logger.info("Starting %s %s (%s)", settings.app_name, settings.app_version, settings.environment)
    return URLService(
        storage=get_storage(),
        cache=get_cache(),
        find_existing=settings.find_existing,
        max_collision_retries=settings.max_collision_retries,
        cleaner_interval=settings.cleaner_interval,
    )
