"""
Core Utilities

Shared helpers used across the application.
"""
from datetime import datetime, timedelta, timezone

# Carrier-facing timestamps are India Standard Time (no DST)
IST = timezone(timedelta(hours=5, minutes=30), name="IST")


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)
