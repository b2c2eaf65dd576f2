"""
Data models for the storage core.

Item is the backend-neutral record; Link is its relational mapping.
"""

from .item import Item, as_utc, utcnow
from .link import Link

__all__ = ["Item", "Link", "as_utc", "utcnow"]
