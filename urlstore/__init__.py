"""
Storage core of a URL shortener.

Maps long URLs to random 64-bit ids (exposed as Base62 short codes),
persists them in a pluggable backend and resolves them through an
in-memory read cache.
"""

from urlstore.exceptions import (
    ShortenerError,
    InvalidCodeError,
    StorageError,
    ItemDuplicatedError,
    NoLinkError,
    DataStoreError,
    CollisionRetriesExhaustedError,
)
from urlstore.models.item import Item
from urlstore.services.url_service import URLService

__all__ = [
    "ShortenerError",
    "InvalidCodeError",
    "StorageError",
    "ItemDuplicatedError",
    "NoLinkError",
    "DataStoreError",
    "CollisionRetriesExhaustedError",
    "Item",
    "URLService",
]
