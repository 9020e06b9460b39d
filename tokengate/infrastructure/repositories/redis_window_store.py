"""
Redis Window Store

Redis implementation of the ordered-set window store.
Plain batches run as MULTI/EXEC transactions; guarded batches run as a
single Lua script so prune, limit check and write are one atomic step.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from redis.asyncio import Redis
from redis.exceptions import NoScriptError

from ...constants import LANE_COUNTER_KEY
from ...domain.limits.repository_interfaces import (
    GuardedBatch,
    GuardedBatchResult,
    ScoreRange,
    WindowOp,
    WindowOpType,
    WindowStore,
    member_weight,
)
from ..redis.connection_factory import RedisConnectionFactory

logger = logging.getLogger(__name__)


# Plan layout (ARGV[1], JSON):
#   prune:  [{key, min, max}]
#   guards: [{keys: [..], aggregate: "sum"|"count", min, max, increment, limit}]
#   commit: [{key, score, member}]
#   expire_ms: int (0 = no expiry)
# Key fields are 1-based KEYS indexes. Scores travel as strings so
# 52-bit ids are never formatted through a Lua double.
GUARDED_BATCH_SCRIPT = """
local plan = cjson.decode(ARGV[1])

local function sum_range(key, min, max)
    local total = 0
    local members = redis.call('ZRANGEBYSCORE', key, min, max)
    for _, member in ipairs(members) do
        local weight = tonumber(string.match(member, ':(%d+)$'))
        if weight then
            total = total + weight
        end
    end
    return total
end

-- Remove expired entries
for _, op in ipairs(plan.prune) do
    redis.call('ZREMRANGEBYSCORE', KEYS[op.key], op.min, op.max)
end

-- Evaluate every guard against the surviving entries
local result = {0}
local failed = 0
for i, guard in ipairs(plan.guards) do
    local total = 0
    for _, k in ipairs(guard.keys) do
        if guard.aggregate == 'sum' then
            total = total + sum_range(KEYS[k], guard.min, guard.max)
        else
            total = total + redis.call('ZCOUNT', KEYS[k], guard.min, guard.max)
        end
    end
    result[i + 1] = total
    if failed == 0 and total + guard.increment > guard.limit then
        failed = i
    end
end
result[1] = failed

-- Write only when every guard holds
if failed == 0 then
    for _, op in ipairs(plan.commit) do
        redis.call('ZADD', KEYS[op.key], op.score, op.member)
        if plan.expire_ms > 0 then
            redis.call('PEXPIRE', KEYS[op.key], plan.expire_ms)
        end
    end
end

return result
"""


def format_min(score_range: ScoreRange) -> str:
    """Redis lower score bound."""
    if score_range.min is None:
        return "-inf"
    return f"({score_range.min}" if score_range.min_exclusive else str(score_range.min)


def format_max(score_range: ScoreRange) -> str:
    """Redis upper score bound."""
    if score_range.max is None:
        return "+inf"
    return f"({score_range.max}" if score_range.max_exclusive else str(score_range.max)


class RedisWindowStore(WindowStore):
    """
    Window store backed by Redis sorted sets.

    All keys touched by one guarded batch must share a hash tag so the
    script can run on a cluster.
    """

    def __init__(self, connection_factory: RedisConnectionFactory, key_prefix: str):
        self._factory = connection_factory
        self._key_prefix = key_prefix
        self._script_sha: Optional[str] = None

    async def execute_batch(self, ops: Sequence[WindowOp]) -> List[int]:
        """Run ops inside one MULTI/EXEC transaction."""
        if not ops:
            return []

        async def run(redis_client: Redis) -> List[Any]:
            pipe = redis_client.pipeline(transaction=True)
            for op in ops:
                self._queue(pipe, op)
            return await pipe.execute()

        raw = await self._factory.execute("execute_batch", run)

        results = []
        for op, value in zip(ops, raw):
            if op.op is WindowOpType.SUM:
                results.append(sum(member_weight(member) for member in value))
            else:
                results.append(int(value))
        return results

    def _queue(self, pipe, op: WindowOp) -> None:
        if op.op is WindowOpType.ADD:
            pipe.zadd(op.key, {op.member: op.score})
        elif op.op is WindowOpType.REMOVE_RANGE:
            pipe.zremrangebyscore(
                op.key, format_min(op.score_range), format_max(op.score_range)
            )
        elif op.op is WindowOpType.COUNT:
            pipe.zcount(op.key, format_min(op.score_range), format_max(op.score_range))
        elif op.op is WindowOpType.SUM:
            pipe.zrangebyscore(
                op.key, format_min(op.score_range), format_max(op.score_range)
            )
        else:
            raise ValueError(f"Unsupported window operation: {op.op}")

    def build_plan(self, batch: GuardedBatch) -> tuple:
        """Translate a guarded batch into (keys, plan JSON) script arguments."""
        keys: List[str] = []
        index: Dict[str, int] = {}

        def key_ref(key: str) -> int:
            if key not in index:
                keys.append(key)
                index[key] = len(keys)
            return index[key]

        plan = {
            "prune": [
                {
                    "key": key_ref(op.key),
                    "min": format_min(op.score_range),
                    "max": format_max(op.score_range),
                }
                for op in batch.prune
            ],
            "guards": [
                {
                    "keys": [key_ref(key) for key in guard.keys],
                    "aggregate": guard.aggregate.value,
                    "min": format_min(guard.score_range),
                    "max": format_max(guard.score_range),
                    "increment": guard.increment,
                    "limit": guard.limit,
                }
                for guard in batch.guards
            ],
            "commit": [
                {"key": key_ref(op.key), "score": str(op.score), "member": op.member}
                for op in batch.commit
            ],
            "expire_ms": batch.expire_ms or 0,
        }
        return keys, json.dumps(plan)

    async def execute_guarded_batch(self, batch: GuardedBatch) -> GuardedBatchResult:
        """Run prune, guards and conditional commit as one Lua script."""
        keys, plan = self.build_plan(batch)

        async def run(redis_client: Redis) -> List[Any]:
            if self._script_sha is None:
                self._script_sha = await redis_client.script_load(GUARDED_BATCH_SCRIPT)
            try:
                return await redis_client.evalsha(
                    self._script_sha, len(keys), *keys, plan
                )
            except NoScriptError:
                # Script cache was flushed on the server; load it again
                self._script_sha = await redis_client.script_load(GUARDED_BATCH_SCRIPT)
                return await redis_client.evalsha(
                    self._script_sha, len(keys), *keys, plan
                )

        raw = await self._factory.execute("execute_guarded_batch", run)

        failed_index = int(raw[0])
        totals = tuple(int(value) for value in raw[1:])
        failed_guard = batch.guards[failed_index - 1].name if failed_index else None

        if failed_guard:
            logger.debug(
                "Guarded batch rejected",
                extra={"failed_guard": failed_guard, "totals": totals},
            )

        return GuardedBatchResult(
            committed=failed_guard is None,
            totals=totals,
            failed_guard=failed_guard,
        )

    async def allocate_lane(self, name: str, lanes: int) -> int:
        """Hand out lanes round-robin from a shared INCR counter."""
        key = f"{self._key_prefix}:{LANE_COUNTER_KEY}:{name}"
        value = await self._factory.execute(
            "allocate_lane", lambda redis_client: redis_client.incr(key)
        )
        return (int(value) - 1) % lanes

    async def connect(self) -> None:
        await self._factory.initialize()

    async def close(self) -> None:
        await self._factory.close()
