"""
MealStamp - Clock

Wall-clock access is injected so day phases, day ids and the coaching
context can be pinned in tests.
"""

from datetime import datetime, tzinfo
from typing import Optional, Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        """Current timezone-aware local time."""
        ...


class SystemClock:
    """Reads the system clock in the configured zone (system local time by default)."""

    def __init__(self, zone: Optional[tzinfo] = None):
        self.zone = zone

    @classmethod
    def from_name(cls, name: str) -> "SystemClock":
        return cls(ZoneInfo(name) if name else None)

    def now(self) -> datetime:
        if self.zone is not None:
            return datetime.now(self.zone)
        return datetime.now().astimezone()
