"""
Limits Domain

Quotas, admission records, the ordered-set store contract and the
errors the admission engine raises.
"""

from .value_objects import (
    RateLimit,
    RateLimitInterval,
    ResourceQuota,
    QuotaOverride,
    LimiterKey,
)
from .entities import AdmissionRecord, AdmissionLoad, RecordKind, WindowUsage
from .repository_interfaces import (
    Aggregate,
    Guard,
    GuardedBatch,
    GuardedBatchResult,
    ScoreRange,
    WindowOp,
    WindowOpType,
    WindowStore,
    make_member,
    member_weight,
)
from .defaults import DEFAULT_RESOURCE_QUOTAS
from .exceptions import (
    LimiterException,
    UnknownLimiterKeyException,
    TokenLimitExceededException,
    RequestLimitExceededException,
    InvalidDeregistrationException,
    LimiterConfigurationException,
)

__all__ = [
    "RateLimit",
    "RateLimitInterval",
    "ResourceQuota",
    "QuotaOverride",
    "LimiterKey",
    "AdmissionRecord",
    "AdmissionLoad",
    "RecordKind",
    "WindowUsage",
    "Aggregate",
    "Guard",
    "GuardedBatch",
    "GuardedBatchResult",
    "ScoreRange",
    "WindowOp",
    "WindowOpType",
    "WindowStore",
    "make_member",
    "member_weight",
    "DEFAULT_RESOURCE_QUOTAS",
    "LimiterException",
    "UnknownLimiterKeyException",
    "TokenLimitExceededException",
    "RequestLimitExceededException",
    "InvalidDeregistrationException",
    "LimiterConfigurationException",
]
