"""
Exceptions raised by the storage core.

The allocator and the read path only branch on the distinguished kinds
(ItemDuplicatedError, NoLinkError); everything else is opaque to them and
propagates to the caller.

Hierarchy:
    ShortenerError
    ├── InvalidCodeError
    └── StorageError
        ├── ItemDuplicatedError
        ├── NoLinkError
        ├── DataStoreError
        └── CollisionRetriesExhaustedError
"""


class ShortenerError(Exception):
    """Base class for all storage core errors."""
    pass


class InvalidCodeError(ShortenerError):
    """Short code is malformed (unknown character, non-canonical or out of range)."""
    pass


class StorageError(ShortenerError):
    """Base class for backend-related errors."""
    pass


class ItemDuplicatedError(StorageError):
    """An active item with the same id already exists."""
    pass


class NoLinkError(StorageError):
    """Item is absent or expired."""
    pass


class DataStoreError(StorageError):
    """
    Driver or connectivity failure in the backing store.

    e.g. connection refused, pool timeout, broken schema, failed migration.
    """
    pass


class CollisionRetriesExhaustedError(StorageError):
    """Every id drawn within the attempt budget collided with an existing item."""
    pass
