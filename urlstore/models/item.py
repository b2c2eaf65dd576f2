"""
Item model shared by every storage backend.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from typing import Optional


MAX_ID = 2 ** 64 - 1


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Item(BaseModel):
    """
    A persisted short link.

    `url` is write-once; only `visits` changes after creation, and it is a
    best-effort counter. An item whose `expires` has passed is logically gone
    even while its record is still physically stored.
    """

    id: int = Field(..., ge=0, le=MAX_ID, description="Unsigned 64-bit random identifier")
    url: str = Field(..., description="The original long URL")
    expires: Optional[datetime] = Field(None, description="Absolute expiry, None = never")
    visits: int = Field(0, ge=0, description="Successful resolutions (best-effort)")

    @field_validator("expires")
    @classmethod
    def _normalise_expires(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when `expires` is set and already passed."""
        if self.expires is None:
            return False
        return self.expires < as_utc(now or utcnow())
