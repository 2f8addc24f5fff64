# tests/conftest.py

import logging
from collections import deque
from collections.abc import Iterable, Iterator
from logging.handlers import RotatingFileHandler

import pytest
import structlog

from beryl import metrics
from beryl.clock import UNIX_EPOCH


class FakeClock:
    """Deterministic clock: returns queued samples first, then holds ``ms``.

    Each queued value becomes the new ``ms`` when it is read, so
    ``FakeClock(5, then=[7])`` reads 7, 7, 7... and ``FakeClock(5)`` reads 5 forever.
    """

    def __init__(self, ms: int = 1_000, then: Iterable[int] = (), epoch=UNIX_EPOCH):
        self.ms = ms
        self.epoch = epoch
        self._queue: deque[int] = deque(then)
        self.reads = 0
        self.sleeps: list[int] = []

    def queue(self, *values: int) -> None:
        self._queue.extend(values)

    def now(self) -> int:
        self.reads += 1
        if self._queue:
            self.ms = self._queue.popleft()
        return self.ms

    def sleep(self, ns: int) -> None:
        self.sleeps.append(ns)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_clock():
    return FakeClock


@pytest.fixture(autouse=True)
def _reset_metrics() -> Iterator[None]:
    metrics.reset_counters()
    yield
    metrics.reset_counters()


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo setup_logging() so handlers bound to captured streams don't leak."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        # Leave pytest's own capture handlers alone
        if type(handler) in (logging.StreamHandler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    structlog.reset_defaults()
