"""Per-producer Crystal generators.

A Generator owns the mutable (sequence, last_timestamp) pair for one producer
id. It is not safe to share between threads: confine it to one owner, or wrap
it in SharedGenerator, which serializes each read-decide-write plus encode.

Exhaustion handling, in increasing order of safety:
- generate_unchecked: wraps the sequence silently; may duplicate Crystals when
  more than 256 are requested within one millisecond.
- try_generate: raises SequenceSpaceExhausted instead of wrapping.
- generate_block_spin / generate_block_sleep: wait for the next millisecond.
"""

from __future__ import annotations

import enum
import threading
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import TYPE_CHECKING

import structlog

from beryl.clock import UNIX_EPOCH, Clock, SystemClock
from beryl.crystal import (
    SEQUENCE_MAX,
    TIMESTAMP_MAX,
    Crystal,
    CrystalPart,
    check_part,
)
from beryl.errors import BerylError, SequenceSpaceExhausted
from beryl.metrics import inc_counter, observe_histogram

if TYPE_CHECKING:
    from beryl.config import Settings

log = structlog.get_logger()

DEFAULT_SLEEP_INTERVAL_NS = 100

# Sentinel for "no millisecond used yet"; never equals a clock sample, so the
# first generation always takes the new-millisecond path and emits sequence 0.
_NO_TIMESTAMP = -1


class BlockingStrategy(str, enum.Enum):
    spin = "spin"
    sleep = "sleep"


class Generator:
    """Generates Crystals for a single producer id.

    Args:
        id: Producer id, 0..16383.
        epoch: Zero point of the timestamp field. Ignored when ``clock`` is given.
        clock: Source of milliseconds since the epoch; defaults to SystemClock(epoch).
        strategy: Blocking strategy used by ``generate``.
        sleep_interval_ns: Pause between clock samples for the sleep strategy.

    Raises:
        FieldOutOfBounds: If ``id`` does not fit 14 bits, or the clock already
            reads past the 42-bit timestamp range.
        BerylError: If the epoch lies in the future.
    """

    def __init__(
        self,
        id: int,
        epoch: datetime = UNIX_EPOCH,
        *,
        clock: Clock | None = None,
        strategy: BlockingStrategy | str = BlockingStrategy.spin,
        sleep_interval_ns: int = DEFAULT_SLEEP_INTERVAL_NS,
    ):
        self.id = check_part(CrystalPart.producer_id, id)
        self.clock: Clock = clock if clock is not None else SystemClock(epoch)
        self.epoch = getattr(self.clock, "epoch", epoch)
        self.strategy = BlockingStrategy(strategy)
        if sleep_interval_ns < 0:
            raise BerylError(f"sleep_interval_ns must be >= 0, got {sleep_interval_ns}")
        self.sleep_interval_ns = sleep_interval_ns

        now = self.clock.now()
        if now < 0:
            raise BerylError(f"Generator epoch lies in the future ({-now} ms ahead)")
        check_part(CrystalPart.timestamp, now)

        self.sequence = SEQUENCE_MAX
        self.last_timestamp = _NO_TIMESTAMP
        self._regressed = False

        inc_counter("generator.created")
        log.info(
            "generator.created",
            producer_id=self.id,
            epoch=str(self.epoch),
            strategy=self.strategy.value,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Clock | None = None) -> Generator:
        return cls(
            settings.generator_id,
            settings.epoch,
            clock=clock,
            strategy=settings.blocking_strategy,
            sleep_interval_ns=settings.sleep_interval_ns,
        )

    # --- public API ---------------------------------------------------

    def generate(self) -> Crystal:
        """Generate a Crystal with the configured blocking strategy.

        Spinning is the default. Neither strategy affects correctness; benchmark
        on the target host if generator throughput matters.
        """
        if self.strategy is BlockingStrategy.sleep:
            return self.generate_block_sleep()
        return self.generate_block_spin()

    def try_generate(self) -> Crystal:
        """Generate a Crystal or raise SequenceSpaceExhausted.

        The only non-blocking path that never emits a duplicate. Callers that
        need bounded waits build their retry/backoff on top of this.
        """
        now = self._sample()
        if self._saturated(now):
            inc_counter("generator.exhausted")
            log.debug("generator.exhausted", producer_id=self.id, timestamp=now)
            raise SequenceSpaceExhausted(self.id, now)
        return self._advance(now)

    def generate_block_spin(self) -> Crystal:
        """Generate a Crystal, re-reading the clock in a tight loop while saturated.

        Lowest wake-up latency; burns a core until the millisecond turns over.
        """
        return self._block(lambda: None)

    def generate_block_sleep(self) -> Crystal:
        """Generate a Crystal, pausing ``sleep_interval_ns`` between clock reads while saturated.

        Wastes a little time where the host has a high-resolution sleep, and a
        lot where it doesn't.
        """
        return self._block(lambda: self.clock.sleep(self.sleep_interval_ns))

    def generate_unchecked(self) -> Crystal:
        """Generate a Crystal without checking it hasn't been generated before.

        Warning: the sequence wraps to 0 after 256 Crystals in one millisecond,
        producing duplicates. Only use this when the caller guarantees a lower
        rate. Never raises and never blocks.
        """
        return self._advance(self._sample())

    def generate_many(self, count: int) -> list[Crystal]:
        return [self.generate() for _ in range(count)]

    def __iter__(self) -> Iterator[Crystal]:
        while True:
            yield self.generate()

    def __repr__(self) -> str:
        return (
            f"Generator(id={self.id}, epoch={self.epoch}, sequence={self.sequence}, "
            f"last_timestamp={self.last_timestamp}, strategy={self.strategy.value})"
        )

    # --- internals ----------------------------------------------------

    def _sample(self) -> int:
        """Read the clock, stalling at last_timestamp if it went backwards."""
        now = self.clock.now()
        if now < self.last_timestamp:
            if not self._regressed:
                self._regressed = True
                inc_counter("generator.clock_regression")
                log.warning(
                    "generator.clock_regression",
                    producer_id=self.id,
                    sampled=now,
                    last_timestamp=self.last_timestamp,
                )
            return self.last_timestamp
        self._regressed = False
        return now

    def _saturated(self, now: int) -> bool:
        return self.sequence == SEQUENCE_MAX and now == self.last_timestamp

    def _block(self, pause: Callable[[], None]) -> Crystal:
        now = self._sample()
        if self._saturated(now):
            started = now
            inc_counter("generator.blocked")
            while self._saturated(now):
                pause()
                now = self._sample()
            observe_histogram("generator.wait_ms", now - started)
        return self._advance(now)

    def _advance(self, now: int) -> Crystal:
        if now == self.last_timestamp:
            self.sequence = (self.sequence + 1) & SEQUENCE_MAX
        else:
            self.sequence = 0
            self.last_timestamp = now
        inc_counter("crystal.generated")
        # Timestamps past 2**42 ms (~139 years after the epoch) wrap
        return Crystal.from_parts_unchecked(self.id, self.sequence, now & TIMESTAMP_MAX)


class SharedGenerator:
    """Thread-safe facade: one lock covers sampling, the state update and encoding."""

    def __init__(self, generator: Generator):
        self._generator = generator
        self._lock = threading.Lock()

    @property
    def id(self) -> int:
        return self._generator.id

    @property
    def generator(self) -> Generator:
        return self._generator

    def generate(self) -> Crystal:
        with self._lock:
            return self._generator.generate()

    def try_generate(self) -> Crystal:
        with self._lock:
            return self._generator.try_generate()

    def generate_block_spin(self) -> Crystal:
        with self._lock:
            return self._generator.generate_block_spin()

    def generate_block_sleep(self) -> Crystal:
        with self._lock:
            return self._generator.generate_block_sleep()

    def generate_unchecked(self) -> Crystal:
        with self._lock:
            return self._generator.generate_unchecked()

    def generate_many(self, count: int) -> list[Crystal]:
        with self._lock:
            return self._generator.generate_many(count)

    def __iter__(self) -> Iterator[Crystal]:
        # Lock per item so other callers interleave with a long-lived iterator
        while True:
            yield self.generate()
