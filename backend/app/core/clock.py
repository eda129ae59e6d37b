"""
Time source injected into services.
"""

from datetime import datetime, timezone


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()


def utcnow() -> datetime:
    """Column default for created/updated timestamps."""
    return datetime.now(timezone.utc)
