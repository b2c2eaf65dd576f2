"""
Builds the read cache selected in settings.
The first instance built is kept and handed out to every later caller.
"""

import logging
from enum import Enum
from typing import Optional

from .strategies import CacheStrategy, LRUMemoryCache, NullCache
from urlstore.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Read cache implementations selectable by name"""
    MEMORY = "memory"
    NULL = "null"


class CacheFactory:
    """
    Read cache factory.

    One cache per process: the URL service and anything else asking for a
    cache share the same instance, and so the same hit/miss counters.
    """

    _instance: Optional[CacheStrategy] = None

    @classmethod
    def create(cls, backend: CacheBackend, config: Optional[Settings] = None) -> CacheStrategy:
        """
        Build the cache on first call, return the shared one afterwards.

        Args:
            backend: Which cache implementation to build
            config: Settings to read capacity from (global settings by default)
        """
        if cls._instance is not None:
            return cls._instance

        config = config or default_settings

        if backend == CacheBackend.MEMORY:
            cls._instance = LRUMemoryCache(capacity=config.cache_capacity)
            logger.info("In-memory LRU cache initialized (capacity %d)", config.cache_capacity)
        elif backend == CacheBackend.NULL:
            cls._instance = NullCache()
            logger.info("Read cache disabled")
        else:
            raise ValueError(f"Unsupported cache backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the shared cache so the next create() builds a new one"""
        cls._instance = None
