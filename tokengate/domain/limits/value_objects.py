"""
Limit Value Objects

Immutable value objects describing quotas and the keys they apply to.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ...constants import (
    DEFAULT_SUBACCOUNT,
    INPUT_TOKENS_SET,
    OUTPUT_TOKENS_SET,
    REQUESTS_SET,
    MILLISECONDS_PER_SECOND,
    MILLISECONDS_PER_MINUTE,
)


class RateLimitInterval(str, Enum):
    """Sliding window lengths supported by the limiter."""

    SECOND = "second"
    MINUTE = "minute"

    @property
    def duration_ms(self) -> int:
        """Window length in milliseconds."""
        if self is RateLimitInterval.SECOND:
            return MILLISECONDS_PER_SECOND
        return MILLISECONDS_PER_MINUTE


class RateLimit(BaseModel):
    """A count allowed per sliding interval."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    count: int = Field(..., ge=1, description="Units allowed per interval")
    interval: RateLimitInterval = Field(..., description="Sliding window length")

    @property
    def duration_ms(self) -> int:
        return self.interval.duration_ms


class ResourceQuota(BaseModel):
    """Token and request limits for one resource/subaccount pair."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: RateLimit
    request: RateLimit

    @property
    def longest_window_ms(self) -> int:
        return max(self.token.duration_ms, self.request.duration_ms)


class QuotaOverride(BaseModel):
    """Sparse override for one subaccount.

    Each present field replaces the default RateLimit wholesale;
    absent fields keep the default.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token: Optional[RateLimit] = None
    request: Optional[RateLimit] = None

    @model_validator(mode="after")
    def require_a_limit(self) -> "QuotaOverride":
        if self.token is None and self.request is None:
            raise ValueError("override must set at least one of 'token' or 'request'")
        return self

    def apply(self, base: Optional[ResourceQuota]) -> ResourceQuota:
        """Resolve this override against a default quota."""
        if base is None:
            if self.token is None or self.request is None:
                raise ValueError(
                    "override for a resource without defaults must set both "
                    "'token' and 'request'"
                )
            return ResourceQuota(token=self.token, request=self.request)

        return ResourceQuota(
            token=self.token or base.token,
            request=self.request or base.request,
        )


@dataclass(frozen=True)
class LimiterKey:
    """
    Immutable (resource, subaccount) pair.

    Builds the ordered-set keys for the pair. The pair is wrapped in a
    Redis hash tag so all sets of one pair map to the same cluster slot.
    """

    resource: str
    subaccount: str = DEFAULT_SUBACCOUNT

    def __post_init__(self) -> None:
        if not self.resource:
            raise ValueError("Limiter resource cannot be empty")
        if not self.subaccount:
            raise ValueError("Limiter subaccount cannot be empty")
        for part in (self.resource, self.subaccount):
            if any(char.isspace() for char in part) or any(c in part for c in "{}"):
                raise ValueError(
                    f"Limiter key part cannot contain whitespace or braces: {part!r}"
                )

    def set_key(self, prefix: str, set_name: str) -> str:
        """Build a namespaced ordered-set key."""
        return f"{prefix}:{set_name}:{{{self.resource}:{self.subaccount}}}"

    def input_tokens_key(self, prefix: str) -> str:
        return self.set_key(prefix, INPUT_TOKENS_SET)

    def output_tokens_key(self, prefix: str) -> str:
        return self.set_key(prefix, OUTPUT_TOKENS_SET)

    def requests_key(self, prefix: str) -> str:
        return self.set_key(prefix, REQUESTS_SET)

    def __str__(self) -> str:
        return f"{self.resource}:{self.subaccount}"
