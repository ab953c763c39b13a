"""
Snowflake id generator tests.
"""

import threading

import pytest

from orderease.services.snowflake_service import (
    EPOCH_MS,
    MAX_NODE,
    MAX_SEQUENCE,
    SnowflakeGenerator,
    decompose,
)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_ids_are_strictly_increasing():
    gen = SnowflakeGenerator(3)
    ids = [gen.next_id() for _ in range(5000)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)


def test_layout_decomposes():
    clock = FakeClock(EPOCH_MS + 123456)
    gen = SnowflakeGenerator(7, clock=clock)
    first = gen.next_id()
    second = gen.next_id()
    assert decompose(first) == {"timestamp_ms": EPOCH_MS + 123456, "node_id": 7, "sequence": 0}
    assert decompose(second)["sequence"] == 1


def test_clock_going_backwards_keeps_order():
    clock = FakeClock(EPOCH_MS + 10_000)
    gen = SnowflakeGenerator(1, clock=clock)
    first = gen.next_id()
    clock.now -= 5_000
    second = gen.next_id()
    assert second > first


def test_sequence_exhaustion_waits_for_next_millisecond():
    start = EPOCH_MS + 50_000
    ticks = iter([start] * (MAX_SEQUENCE + 3) + [start + 1] * 10)

    gen = SnowflakeGenerator(1, clock=lambda: next(ticks))
    ids = [gen.next_id() for _ in range(MAX_SEQUENCE + 2)]
    assert len(set(ids)) == len(ids)
    assert decompose(ids[-1]) == {"timestamp_ms": start + 1, "node_id": 1, "sequence": 0}


def test_different_nodes_never_collide():
    clock = FakeClock(EPOCH_MS + 1)
    a = SnowflakeGenerator(1, clock=clock)
    b = SnowflakeGenerator(2, clock=clock)
    assert {a.next_id() for _ in range(100)}.isdisjoint({b.next_id() for _ in range(100)})


@pytest.mark.parametrize("node_id", [-1, MAX_NODE + 1])
def test_node_id_range(node_id):
    with pytest.raises(ValueError):
        SnowflakeGenerator(node_id)


def test_thread_safety():
    gen = SnowflakeGenerator(5)
    results = []
    lock = threading.Lock()

    def worker():
        local = [gen.next_id() for _ in range(1000)]
        with lock:
            results.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == len(set(results)) == 8000
