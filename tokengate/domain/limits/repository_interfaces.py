"""
Window Store Interfaces

Abstract ordered-set store required by the admission engine.
Defines the operations, the guarded batch contract, and the
single accounting scheme every implementation must follow.

Accounting scheme (weighted single entry):
    one member per admitted event, score = numeric id,
    member = "<id>:<weight>". Token totals are sums of weights,
    request totals are cardinalities.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple


class WindowOpType(str, Enum):
    """Primitive ordered-set operations."""

    ADD = "add"
    REMOVE_RANGE = "remove_range"
    COUNT = "count"
    SUM = "sum"


class Aggregate(str, Enum):
    """How a guard totals the members of its keys."""

    COUNT = "count"
    SUM = "sum"


def make_member(score: int, weight: int) -> str:
    """Encode a weighted entry member."""
    return f"{score}:{weight}"


def member_weight(member: str) -> int:
    """Decode the weight of a weighted entry member."""
    _, _, weight = member.rpartition(":")
    return int(weight) if weight.isdigit() else 0


@dataclass(frozen=True)
class ScoreRange:
    """Score interval; a missing bound is infinite."""

    min: Optional[int] = None
    max: Optional[int] = None
    min_exclusive: bool = False
    max_exclusive: bool = False

    @classmethod
    def below(cls, cutoff: int) -> "ScoreRange":
        """Everything strictly below cutoff."""
        return cls(max=cutoff, max_exclusive=True)

    @classmethod
    def at_or_above(cls, cutoff: int) -> "ScoreRange":
        return cls(min=cutoff)

    @classmethod
    def point(cls, score: int) -> "ScoreRange":
        """Inclusive single score."""
        return cls(min=score, max=score)

    @classmethod
    def everything(cls) -> "ScoreRange":
        return cls()

    def contains(self, score: int) -> bool:
        if self.min is not None:
            if score < self.min or (self.min_exclusive and score == self.min):
                return False
        if self.max is not None:
            if score > self.max or (self.max_exclusive and score == self.max):
                return False
        return True


@dataclass(frozen=True)
class WindowOp:
    """One ordered-set operation inside a batch."""

    op: WindowOpType
    key: str
    score_range: Optional[ScoreRange] = None
    score: Optional[int] = None
    weight: int = 0

    @classmethod
    def add(cls, key: str, score: int, weight: int) -> "WindowOp":
        if weight < 0:
            raise ValueError("weight must be >= 0")
        return cls(WindowOpType.ADD, key, score=score, weight=weight)

    @classmethod
    def remove_range(cls, key: str, score_range: ScoreRange) -> "WindowOp":
        return cls(WindowOpType.REMOVE_RANGE, key, score_range=score_range)

    @classmethod
    def count(cls, key: str, score_range: ScoreRange) -> "WindowOp":
        return cls(WindowOpType.COUNT, key, score_range=score_range)

    @classmethod
    def sum(cls, key: str, score_range: ScoreRange) -> "WindowOp":
        return cls(WindowOpType.SUM, key, score_range=score_range)

    @property
    def member(self) -> str:
        if self.score is None:
            raise ValueError(f"{self.op.value} operation has no member")
        return make_member(self.score, self.weight)


@dataclass(frozen=True)
class Guard:
    """
    Server-side condition evaluated inside a guarded batch.

    Holds when aggregate(keys within score_range) + increment <= limit.
    """

    name: str
    keys: Tuple[str, ...]
    aggregate: Aggregate
    score_range: ScoreRange
    increment: int
    limit: int


@dataclass(frozen=True)
class GuardedBatch:
    """
    Prune, check and conditional commit executed as one atomic unit.

    Prune ops always run. Guards are evaluated in order after pruning.
    Commit ops run only if every guard holds.
    """

    prune: Sequence[WindowOp] = field(default_factory=tuple)
    guards: Sequence[Guard] = field(default_factory=tuple)
    commit: Sequence[WindowOp] = field(default_factory=tuple)
    expire_ms: Optional[int] = None

    def __post_init__(self) -> None:
        for op in self.prune:
            if op.op is not WindowOpType.REMOVE_RANGE:
                raise ValueError("prune ops must be remove_range operations")
        for op in self.commit:
            if op.op is not WindowOpType.ADD:
                raise ValueError("commit ops must be add operations")


@dataclass(frozen=True)
class GuardedBatchResult:
    """Outcome of a guarded batch.

    Attributes:
        committed: Whether the commit ops were applied.
        totals: Pre-write aggregate for every guard, in guard order.
        failed_guard: Name of the first guard that did not hold.
    """

    committed: bool
    totals: Tuple[int, ...]
    failed_guard: Optional[str] = None


class WindowStore(ABC):
    """
    Abstract ordered-set store.

    The only point of contact between the admission engine and shared
    state. Every batch is atomic and serialized against other batches
    touching the same keys. Transport failures surface as
    StoreUnavailableException and are never retried here.
    """

    @abstractmethod
    async def execute_batch(self, ops: Sequence[WindowOp]) -> List[int]:
        """Run ops atomically, returning one integer result per op."""
        pass

    @abstractmethod
    async def execute_guarded_batch(self, batch: GuardedBatch) -> GuardedBatchResult:
        """Run prune, guards and conditional commit atomically."""
        pass

    @abstractmethod
    async def allocate_lane(self, name: str, lanes: int) -> int:
        """Atomically hand out the next lane in [0, lanes)."""
        pass

    async def connect(self) -> None:
        """Establish store connections ahead of the first batch."""
        return None

    async def close(self) -> None:
        """Release store resources."""
        return None

    async def add_member(self, key: str, score: int, weight: int) -> int:
        """Append one weighted entry; returns the number of new members."""
        results = await self.execute_batch([WindowOp.add(key, score, weight)])
        return results[0]

    async def remove_range_by_score(self, key: str, score_range: ScoreRange) -> int:
        """Delete entries with score in range; returns the number removed."""
        results = await self.execute_batch([WindowOp.remove_range(key, score_range)])
        return results[0]

    async def count_in_range(self, key: str, score_range: ScoreRange) -> int:
        """Number of surviving entries in range."""
        results = await self.execute_batch([WindowOp.count(key, score_range)])
        return results[0]

    async def sum_in_range(self, key: str, score_range: ScoreRange) -> int:
        """Sum of surviving entry weights in range."""
        results = await self.execute_batch([WindowOp.sum(key, score_range)])
        return results[0]
