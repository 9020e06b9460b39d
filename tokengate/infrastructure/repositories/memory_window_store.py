"""In-process window store.

Notes:
- Per-process only: separate processes do not share counts.
- Batches are serialized with an asyncio.Lock, so every batch is atomic
  with respect to other coroutines on the same event loop.
- Each set is a score-ordered list of (score, member, weight) entries;
  range operations bisect on score.
"""

import asyncio
from bisect import bisect_left, insort
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from ...domain.limits.repository_interfaces import (
    Aggregate,
    GuardedBatch,
    GuardedBatchResult,
    ScoreRange,
    WindowOp,
    WindowOpType,
    WindowStore,
)

Entry = Tuple[int, str, int]


class InMemoryWindowStore(WindowStore):
    """Window store keeping sorted sets in process memory."""

    def __init__(self) -> None:
        self._entries: Dict[str, List[Entry]] = {}
        self._scores: Dict[str, Dict[str, int]] = {}
        self._lane_counters: Dict[str, int] = defaultdict(int)
        self._lock = asyncio.Lock()

    def _bounds(self, entries: List[Entry], score_range: ScoreRange) -> Tuple[int, int]:
        lo, hi = 0, len(entries)
        if score_range.min is not None:
            start = score_range.min + 1 if score_range.min_exclusive else score_range.min
            lo = bisect_left(entries, (start,))
        if score_range.max is not None:
            stop = score_range.max if score_range.max_exclusive else score_range.max + 1
            hi = bisect_left(entries, (stop,))
        return lo, max(lo, hi)

    def _add(self, key: str, score: int, member: str, weight: int) -> int:
        entries = self._entries.setdefault(key, [])
        scores = self._scores.setdefault(key, {})
        previous = scores.get(member)
        if previous is not None:
            if previous == score:
                return 0
            entries.remove((previous, member, weight))
        scores[member] = score
        insort(entries, (score, member, weight))
        return int(previous is None)

    def _remove_range(self, key: str, score_range: ScoreRange) -> int:
        entries = self._entries.get(key)
        if not entries:
            return 0
        lo, hi = self._bounds(entries, score_range)
        scores = self._scores[key]
        for _, member, _ in entries[lo:hi]:
            del scores[member]
        del entries[lo:hi]
        if not entries:
            del self._entries[key]
            del self._scores[key]
        return hi - lo

    def _aggregate(self, key: str, score_range: ScoreRange, aggregate: Aggregate) -> int:
        entries = self._entries.get(key)
        if not entries:
            return 0
        lo, hi = self._bounds(entries, score_range)
        if aggregate is Aggregate.COUNT:
            return hi - lo
        return sum(weight for _, _, weight in entries[lo:hi])

    def _apply(self, op: WindowOp) -> int:
        if op.op is WindowOpType.ADD:
            return self._add(op.key, op.score, op.member, op.weight)
        if op.op is WindowOpType.REMOVE_RANGE:
            return self._remove_range(op.key, op.score_range)
        if op.op is WindowOpType.COUNT:
            return self._aggregate(op.key, op.score_range, Aggregate.COUNT)
        if op.op is WindowOpType.SUM:
            return self._aggregate(op.key, op.score_range, Aggregate.SUM)
        raise ValueError(f"Unsupported window operation: {op.op}")

    async def execute_batch(self, ops: Sequence[WindowOp]) -> List[int]:
        async with self._lock:
            return [self._apply(op) for op in ops]

    async def execute_guarded_batch(self, batch: GuardedBatch) -> GuardedBatchResult:
        async with self._lock:
            for op in batch.prune:
                self._apply(op)

            totals = []
            failed_guard = None
            for guard in batch.guards:
                total = sum(
                    self._aggregate(key, guard.score_range, guard.aggregate)
                    for key in guard.keys
                )
                totals.append(total)
                if failed_guard is None and total + guard.increment > guard.limit:
                    failed_guard = guard.name

            if failed_guard is None:
                for op in batch.commit:
                    self._apply(op)

            return GuardedBatchResult(
                committed=failed_guard is None,
                totals=tuple(totals),
                failed_guard=failed_guard,
            )

    async def allocate_lane(self, name: str, lanes: int) -> int:
        async with self._lock:
            lane = self._lane_counters[name] % lanes
            self._lane_counters[name] += 1
            return lane

    def snapshot(self, key: str) -> Dict[str, int]:
        """Copy of one sorted set, member -> score."""
        return dict(self._scores.get(key, {}))
