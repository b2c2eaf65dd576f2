"""
Factory for creating link storage instances.
Simple, clean factory with singleton caching.
"""

import logging
from enum import Enum
from typing import Optional

import redis

from .strategies import LinkStorageStrategy, RelationalLinkStorage, RedisLinkStorage, EmbeddedLinkStorage
from urlstore.config import Settings, settings as default_settings
from urlstore.exceptions import DataStoreError

logger = logging.getLogger(__name__)


class StorageBackend(Enum):
    """Available link storage backends"""
    RELATIONAL = "relational"
    REDIS = "redis"
    EMBEDDED = "embedded"


class StorageFactory:
    """
    Simple factory for creating link storage instances.

    The backend is chosen once from configuration; each variant owns its
    own connection state. A failed initial connection is fatal: the error
    propagates instead of falling back to another backend.
    """

    _instance: LinkStorageStrategy = None  # Single cached instance

    @classmethod
    def create(
        cls,
        backend: StorageBackend,
        config: Optional[Settings] = None
    ) -> LinkStorageStrategy:
        """
        Create or return cached storage instance.

        Args:
            backend: Type of storage backend (from enum)
            config: Settings to build from (defaults to the global settings)

        Returns:
            Singleton storage instance

        Raises:
            DataStoreError: the backend could not be reached or initialized
        """
        # Return cached instance if exists
        if cls._instance is not None:
            return cls._instance

        config = config or default_settings

        if backend == StorageBackend.RELATIONAL:
            cls._instance = RelationalLinkStorage(
                database_url=config.database_url,
                pool_size=config.relational_pool_size,
                pool_timeout=config.relational_pool_timeout,
            )
            logger.info(
                "Using relational storage on %s, pool %d, timeout %ss",
                cls._instance.engine.url.render_as_string(hide_password=True),
                config.relational_pool_size,
                config.relational_pool_timeout,
            )

        elif backend == StorageBackend.REDIS:
            redis_client = redis.from_url(
                config.redis_url,
                decode_responses=False,
                max_connections=config.redis_max_connections,
                socket_connect_timeout=config.redis_socket_timeout,
                socket_timeout=config.redis_socket_timeout,
            )

            try:
                # Test connection immediately
                redis_client.ping()
            except redis.exceptions.RedisError as e:
                redis_client.close()
                raise DataStoreError(f"Can't connect to Redis at {config.redis_url}: {e}") from e

            cls._instance = RedisLinkStorage(redis_client, key_prefix=config.redis_key_prefix)
            logger.info("Using redis storage on %s", config.redis_url)

        elif backend == StorageBackend.EMBEDDED:
            cls._instance = EmbeddedLinkStorage(
                db_path=config.embedded_path,
                bucket=config.embedded_bucket,
                timeout=config.embedded_timeout,
            )
            logger.info(
                "Using embedded storage on %s:%s, timeout %ss",
                config.embedded_path,
                config.embedded_bucket,
                config.embedded_timeout,
            )

        else:
            raise ValueError(f"Unknown storage backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Clear cached instance (for testing)"""
        cls._instance = None
