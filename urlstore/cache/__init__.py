"""
Read cache module for the storage core.
Implements Strategy Pattern for flexible cache backends.
"""

from .strategies import CacheStrategy, LRUMemoryCache, NullCache
from .factory import CacheFactory, CacheBackend

__all__ = [
    "CacheStrategy",
    "LRUMemoryCache",
    "NullCache",
    "CacheFactory",
    "CacheBackend",
]
