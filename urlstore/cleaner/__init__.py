"""
Background expiry cleanup for storages that support batch deletion.
"""

from .expiry_cleaner import ExpiryCleaner

__all__ = ["ExpiryCleaner"]
