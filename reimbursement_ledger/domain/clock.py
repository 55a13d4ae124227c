"""
Injectable time source for the ledger.

Approval expiry, write-off timestamps and the created/updated columns of
links and rules all read the current instant from a ``Clock`` handed to
the service or store that needs it.  Nothing in the package calls
``datetime.now()`` outside ``SystemClock``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

LEDGER_EPOCH = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now_utc(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves when ``advance``, ``advance_minutes`` or ``tick`` is
    called, so approval TTLs and ``created_at`` ordering are reproducible.
    """

    def __init__(self, start: datetime | None = None):
        self._current = (start or LEDGER_EPOCH).astimezone(timezone.utc)

    def now_utc(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_minutes(self, minutes: int) -> None:
        self.advance(minutes * 60)

    def tick(self) -> datetime:
        self.advance(1)
        return self._current
