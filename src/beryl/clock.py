"""Millisecond clocks measured from an application-chosen epoch."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Final, Protocol, runtime_checkable

UNIX_EPOCH: Final[datetime] = datetime(1970, 1, 1, tzinfo=timezone.utc)


@runtime_checkable
class Clock(Protocol):
    """What a generator needs from its environment: read time, pause briefly."""

    def now(self) -> int:
        """Milliseconds elapsed since the clock's epoch."""
        ...

    def sleep(self, ns: int) -> None:
        """Yield the processor for roughly ``ns`` nanoseconds."""
        ...


def _aware(epoch: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    if epoch.tzinfo is None:
        return epoch.replace(tzinfo=timezone.utc)
    return epoch


class SystemClock:
    """Wall clock in milliseconds since ``epoch`` (UNIX epoch by default).

    The resolution of ``sleep`` depends on the host; on most systems a 100ns
    request returns after tens of microseconds.
    """

    def __init__(self, epoch: datetime = UNIX_EPOCH):
        self.epoch = _aware(epoch)
        delta = self.epoch - UNIX_EPOCH
        self._epoch_ns = (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + (
            delta.microseconds * 1_000
        )

    def now(self) -> int:
        return (time.time_ns() - self._epoch_ns) // 1_000_000

    def sleep(self, ns: int) -> None:
        time.sleep(ns / 1_000_000_000)

    def __repr__(self) -> str:
        return f"SystemClock(epoch={self.epoch.isoformat()})"
