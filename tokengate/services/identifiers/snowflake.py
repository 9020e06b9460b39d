"""
Time-Ordered Identifier Generator

Produces decimal-string ids laid out high to low as
[42 bit ms since ID_EPOCH_MS][5 bit lane][5 bit counter].

Ids double as sorted-set scores and as window boundaries. The rolling
counter is process-local: at most 32 distinct ids per millisecond per
lane. A 33rd id within one millisecond wraps the counter and repeats
an earlier id. Separate processes sharing one store must use separate
lanes (see RedisWindowStore.allocate_lane).
"""

import threading
import time
from typing import Callable, Union

from ...constants import (
    ID_COUNTER_BITS,
    ID_EPOCH_MS,
    ID_LANE_BITS,
    ID_TIMESTAMP_BITS,
    MAX_COUNTER,
    MAX_LANE,
)

_TIMESTAMP_SHIFT = ID_LANE_BITS + ID_COUNTER_BITS
_TIMESTAMP_MASK = (1 << ID_TIMESTAMP_BITS) - 1


def _timestamp_bits(timestamp_ms: int) -> int:
    offset = max(0, timestamp_ms - ID_EPOCH_MS)
    return (offset & _TIMESTAMP_MASK) << _TIMESTAMP_SHIFT


def boundary_score(timestamp_ms: int) -> int:
    """Lowest score any real id for timestamp_ms can take."""
    return _timestamp_bits(timestamp_ms)


def timestamp_of(identifier: Union[str, int]) -> int:
    """Epoch milliseconds encoded in an id."""
    return (int(identifier) >> _TIMESTAMP_SHIFT) + ID_EPOCH_MS


class SnowflakeIdGenerator:
    """Generator for time-ordered ids on one lane."""

    def __init__(self, lane: int = 0, clock: Callable[[], float] = time.time):
        if not 0 <= lane <= MAX_LANE:
            raise ValueError(f"lane must be between 0 and {MAX_LANE}")
        self._lane = lane
        self._clock = clock
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def lane(self) -> int:
        return self._lane

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _next_count(self) -> int:
        with self._lock:
            count = self._counter
            self._counter = 0 if count >= MAX_COUNTER else count + 1
            return count

    def next_score(self) -> int:
        """Next id as an integer score."""
        count = self._next_count()
        return (
            _timestamp_bits(self.now_ms())
            | (self._lane << ID_COUNTER_BITS)
            | count
        )

    def next_id(self) -> str:
        """Next id, decimal-encoded."""
        return str(self.next_score())

    def boundary_id(self, timestamp_ms: int) -> str:
        """Range cutoff for timestamp_ms with lane and counter zeroed."""
        return str(boundary_score(timestamp_ms))
