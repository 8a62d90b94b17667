"""
Datetime helpers - everything is stored and compared in UTC
"""

from datetime import datetime, UTC
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize datetime to aware UTC

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back are naive and must be treated as UTC before comparing.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
