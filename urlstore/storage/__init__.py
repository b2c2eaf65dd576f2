"""
Link storage module.

This module implements the Strategy Pattern for pluggable link persistence:
relational (SQLAlchemy), Redis and an embedded single-file store share one
contract, and one of them is selected at startup.
"""

from .strategies import LinkStorageStrategy, RelationalLinkStorage, RedisLinkStorage, EmbeddedLinkStorage
from .factory import StorageFactory, StorageBackend

__all__ = [
    "LinkStorageStrategy",
    "RelationalLinkStorage",
    "RedisLinkStorage",
    "EmbeddedLinkStorage",
    "StorageFactory",
    "StorageBackend",
]
