"""
In-Memory Window Store Tests

Unit tests for ordered-set semantics and guarded batches.
"""

import asyncio

import pytest

from tokengate.domain.limits import (
    Aggregate,
    Guard,
    GuardedBatch,
    ScoreRange,
    WindowOp,
)


def token_guard(keys, limit, increment, cutoff=0):
    return Guard(
        name="tokens",
        keys=tuple(keys),
        aggregate=Aggregate.SUM,
        score_range=ScoreRange.at_or_above(cutoff),
        increment=increment,
        limit=limit,
    )


class TestInMemoryWindowStore:
    """Test cases for InMemoryWindowStore."""

    @pytest.mark.asyncio
    async def test_add_count_and_sum(self, memory_store):
        """Test weighted entries count once and sum by weight."""
        results = await memory_store.execute_batch(
            [
                WindowOp.add("k", 10, 100),
                WindowOp.add("k", 20, 50),
                WindowOp.add("k", 10, 100),
                WindowOp.count("k", ScoreRange.everything()),
                WindowOp.sum("k", ScoreRange.everything()),
            ]
        )
        assert results == [1, 1, 0, 2, 150]

    @pytest.mark.asyncio
    async def test_remove_range_is_exclusive_below(self, memory_store):
        """Test pruning below a cutoff keeps the cutoff entry."""
        for score in (5, 10, 15):
            await memory_store.add_member("k", score, 1)

        removed = await memory_store.remove_range_by_score("k", ScoreRange.below(10))

        assert removed == 1
        assert await memory_store.count_in_range("k", ScoreRange.everything()) == 2
        assert memory_store.snapshot("k") == {"10:1": 10, "15:1": 15}

    @pytest.mark.asyncio
    async def test_point_removal(self, memory_store):
        """Test point ranges remove exactly one score."""
        for score in (5, 10, 15):
            await memory_store.add_member("k", score, 2)

        assert await memory_store.remove_range_by_score("k", ScoreRange.point(10)) == 1
        assert await memory_store.remove_range_by_score("k", ScoreRange.point(10)) == 0
        assert await memory_store.sum_in_range("k", ScoreRange.everything()) == 4

    @pytest.mark.asyncio
    async def test_exclusive_min(self, memory_store):
        """Test exclusive lower bounds."""
        for score in (5, 10):
            await memory_store.add_member("k", score, 1)
        assert await memory_store.count_in_range("k", ScoreRange(min=5, min_exclusive=True)) == 1

    @pytest.mark.asyncio
    async def test_missing_key_is_empty(self, memory_store):
        """Test operations on absent keys return zero."""
        assert await memory_store.count_in_range("none", ScoreRange.everything()) == 0
        assert await memory_store.sum_in_range("none", ScoreRange.everything()) == 0
        assert await memory_store.remove_range_by_score("none", ScoreRange.below(5)) == 0

    @pytest.mark.asyncio
    async def test_guarded_batch_commits_when_guards_hold(self, memory_store):
        """Test commit ops run when every guard holds."""
        await memory_store.add_member("in", 1, 60)

        result = await memory_store.execute_guarded_batch(
            GuardedBatch(
                guards=[token_guard(["in", "out"], limit=100, increment=40)],
                commit=[WindowOp.add("in", 2, 40)],
            )
        )

        assert result.committed is True
        assert result.totals == (60,)
        assert result.failed_guard is None
        assert await memory_store.sum_in_range("in", ScoreRange.everything()) == 100

    @pytest.mark.asyncio
    async def test_guarded_batch_rejects_without_writing(self, memory_store):
        """Test a failing guard leaves the store unchanged."""
        await memory_store.add_member("in", 1, 60)
        await memory_store.add_member("out", 2, 30)

        result = await memory_store.execute_guarded_batch(
            GuardedBatch(
                guards=[token_guard(["in", "out"], limit=100, increment=11)],
                commit=[WindowOp.add("in", 3, 11)],
            )
        )

        assert result.committed is False
        assert result.totals == (90,)
        assert result.failed_guard == "tokens"
        assert await memory_store.count_in_range("in", ScoreRange.everything()) == 1

    @pytest.mark.asyncio
    async def test_guarded_batch_prunes_before_guards(self, memory_store):
        """Test expired entries are removed before totals are taken."""
        await memory_store.add_member("in", 1, 90)
        await memory_store.add_member("in", 50, 5)

        result = await memory_store.execute_guarded_batch(
            GuardedBatch(
                prune=[WindowOp.remove_range("in", ScoreRange.below(10))],
                guards=[token_guard(["in"], limit=100, increment=50, cutoff=10)],
                commit=[WindowOp.add("in", 60, 50)],
            )
        )

        assert result.committed is True
        assert result.totals == (5,)
        assert memory_store.snapshot("in") == {"50:5": 50, "60:50": 60}

    @pytest.mark.asyncio
    async def test_prune_persists_on_rejection(self, memory_store):
        """Test pruning still happens when a guard fails."""
        await memory_store.add_member("in", 1, 10)

        result = await memory_store.execute_guarded_batch(
            GuardedBatch(
                prune=[WindowOp.remove_range("in", ScoreRange.below(10))],
                guards=[token_guard(["in"], limit=5, increment=6, cutoff=10)],
                commit=[WindowOp.add("in", 20, 6)],
            )
        )

        assert result.committed is False
        assert memory_store.snapshot("in") == {}

    @pytest.mark.asyncio
    async def test_every_guard_total_reported(self, memory_store):
        """Test totals are reported for all guards even after a failure."""
        request_guard = Guard(
            name="requests",
            keys=("req",),
            aggregate=Aggregate.COUNT,
            score_range=ScoreRange.everything(),
            increment=1,
            limit=10,
        )
        await memory_store.add_member("req", 1, 0)

        result = await memory_store.execute_guarded_batch(
            GuardedBatch(guards=[token_guard(["in"], limit=0, increment=1), request_guard])
        )

        assert result.failed_guard == "tokens"
        assert result.totals == (0, 1)

    @pytest.mark.asyncio
    async def test_concurrent_guarded_batches_never_overshoot(self, memory_store):
        """Test concurrent admissions respect the limit exactly."""

        async def admit(score):
            return await memory_store.execute_guarded_batch(
                GuardedBatch(
                    guards=[token_guard(["in"], limit=100, increment=10)],
                    commit=[WindowOp.add("in", score, 10)],
                )
            )

        results = await asyncio.gather(*(admit(score) for score in range(1, 26)))

        assert sum(1 for r in results if r.committed) == 10
        assert await memory_store.sum_in_range("in", ScoreRange.everything()) == 100

    @pytest.mark.asyncio
    async def test_allocate_lane_round_robin(self, memory_store):
        """Test lanes are handed out in order and wrap."""
        lanes = [await memory_store.allocate_lane("ids", 3) for _ in range(4)]
        assert lanes == [0, 1, 2, 0]
