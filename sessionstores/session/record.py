"""
Session record model.

A SessionRecord is the unit every backend persists: an identifier, an
opaque data mapping and an absolute expiry instant.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """
    A persisted session.

    Attributes:
        id: The session identifier. None until the record is created.
        data: Application data. Stores treat it as opaque once encoded.
        expiry_date: Absolute, timezone-aware instant after which the
            record is considered absent.
    """
    expiry_date: datetime
    data: dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.expiry_date.tzinfo is None or self.expiry_date.utcoffset() is None:
            raise ValueError("expiry_date must be a timezone-aware datetime")

    @classmethod
    def new(
        cls,
        data: Optional[dict[str, Any]] = None,
        ttl: Optional[timedelta] = None,
        expiry_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> "SessionRecord":
        """
        Build a record that has not been stored yet.

        Exactly one of ttl or expiry_date must be given.

        Args:
            data: Initial session data (empty if omitted).
            ttl: Lifetime relative to now.
            expiry_date: Absolute expiry instant.
            now: Reference time for ttl, defaults to the current UTC time.
        """
        if (ttl is None) == (expiry_date is None):
            raise ValueError("Provide exactly one of ttl or expiry_date")
        if ttl is not None:
            expiry_date = (now or utc_now()) + ttl
        return cls(expiry_date=expiry_date, data=dict(data or {}))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True when expiry_date is at or before now."""
        return self.expiry_date <= (now or utc_now())
