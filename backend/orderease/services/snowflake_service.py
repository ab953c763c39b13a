# Overview: Process-wide 64-bit snowflake id generator.

"""
Snowflake identifiers.

Layout (most significant first): 41 bits of milliseconds since EPOCH_MS,
10 bits of node id, 12 bits of per-millisecond sequence. Ids from one
node are strictly increasing; ids from different nodes never collide.
"""

from __future__ import annotations

import threading
import time

EPOCH_MS = 1288834974657
NODE_BITS = 10
SEQUENCE_BITS = 12
MAX_NODE = (1 << NODE_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
TIME_SHIFT = NODE_BITS + SEQUENCE_BITS


class SnowflakeGenerator:
    def __init__(self, node_id: int, *, clock=None):
        if node_id < 0 or node_id > MAX_NODE:
            raise ValueError(f"node_id must be between 0 and {MAX_NODE}")
        self.node_id = node_id
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._lock = threading.Lock()
        self._last_ms = -1
        self._sequence = 0

    def next_id(self) -> int:
        with self._lock:
            now = self._clock()
            # Clock stepped back: keep issuing from the last seen millisecond.
            if now < self._last_ms:
                now = self._last_ms

            if now == self._last_ms:
                self._sequence = (self._sequence + 1) & MAX_SEQUENCE
                if self._sequence == 0:
                    # Sequence exhausted for this millisecond; wait for the next one.
                    while now <= self._last_ms:
                        time.sleep(0.0001)
                        now = self._clock()
            else:
                self._sequence = 0

            self._last_ms = now
            return ((now - EPOCH_MS) << TIME_SHIFT) | (self.node_id << SEQUENCE_BITS) | self._sequence


def decompose(snowflake_id: int) -> dict:
    return {
        "timestamp_ms": (snowflake_id >> TIME_SHIFT) + EPOCH_MS,
        "node_id": (snowflake_id >> SEQUENCE_BITS) & MAX_NODE,
        "sequence": snowflake_id & MAX_SEQUENCE,
    }


_generator: SnowflakeGenerator | None = None
_generator_lock = threading.Lock()


def init_generator(node_id: int) -> SnowflakeGenerator:
    """Install the process-wide generator. Re-initializing with the same node is a no-op."""
    global _generator
    with _generator_lock:
        if _generator is None or _generator.node_id != node_id:
            _generator = SnowflakeGenerator(node_id)
        return _generator


def next_id() -> int:
    gen = _generator
    if gen is None:
        gen = init_generator(1)
    return gen.next_id()
