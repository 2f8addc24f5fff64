"""Thread-safety of SharedGenerator and independence of separate generators."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from beryl.crystal import SEQUENCE_MAX
from beryl.errors import SequenceSpaceExhausted
from beryl.generator import Generator, SharedGenerator


def test_delegates_to_wrapped_generator(clock):
    shared = SharedGenerator(Generator(4, clock=clock))
    assert shared.id == 4
    assert shared.generate().sequence == 0
    assert shared.try_generate().sequence == 1
    assert shared.generate_unchecked().sequence == 2
    assert shared.generate_block_spin().sequence == 3
    assert shared.generate_block_sleep().sequence == 4
    assert [c.sequence for c in shared.generate_many(2)] == [5, 6]
    assert shared.generator.sequence == 6


def test_propagates_exhaustion(clock):
    gen = Generator(0, clock=clock)
    gen.sequence = SEQUENCE_MAX
    gen.last_timestamp = clock.ms
    with pytest.raises(SequenceSpaceExhausted):
        SharedGenerator(gen).try_generate()


@pytest.mark.slow
def test_concurrent_callers_never_collide():
    shared = SharedGenerator(Generator(11))
    per_thread = 500
    workers = 8
    start = threading.Barrier(workers)

    def _work(_):
        start.wait()
        return [shared.generate() for _ in range(per_thread)]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        batches = list(pool.map(_work, range(workers)))

    crystals = [c for batch in batches for c in batch]
    assert len(crystals) == per_thread * workers
    assert len(set(crystals)) == len(crystals)
    assert {c.producer_id for c in crystals} == {11}


def test_independent_generators_do_not_collide(clock):
    a = Generator(1, clock=clock)
    b = Generator(2, clock=clock)
    ca = [a.try_generate() for _ in range(10)]
    cb = [b.try_generate() for _ in range(10)]
    # Same sequence and timestamp, distinct producer id
    assert [c.sequence for c in ca] == [c.sequence for c in cb]
    assert not set(ca) & set(cb)


def test_iteration_interleaves_with_other_callers(clock):
    shared = SharedGenerator(Generator(4, clock=clock))
    stream = iter(shared)
    assert next(stream).sequence == 0
    assert shared.generate().sequence == 1
    assert next(stream).sequence == 2
    # Lock is released between items
    assert shared._lock.acquire(blocking=False)
    shared._lock.release()
