"""Wall-clock access, injectable so tests can fix the current time."""
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Clock returning timezone-aware UTC wall time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
