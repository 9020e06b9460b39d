"""
tokengate

Distributed sliding-window token and request admission control for
chat-completion calls, backed by Redis sorted sets.
"""

from .constants import DEFAULT_SUBACCOUNT
from .core.config import Settings, get_settings
from .domain.limits import (
    DEFAULT_RESOURCE_QUOTAS,
    AdmissionLoad,
    AdmissionRecord,
    InvalidDeregistrationException,
    LimiterConfigurationException,
    LimiterException,
    RateLimit,
    RateLimitInterval,
    RecordKind,
    RequestLimitExceededException,
    ResourceQuota,
    QuotaOverride,
    TokenLimitExceededException,
    UnknownLimiterKeyException,
    WindowStore,
    WindowUsage,
)
from .infrastructure.redis import (
    StoreCircuitOpenException,
    StoreOperationTimeoutException,
    StoreUnavailableException,
)
from .infrastructure.repositories import InMemoryWindowStore, RedisWindowStore
from .services.admission import AdmissionEngine
from .services.identifiers import SnowflakeIdGenerator
from .services.limits import RateLimitRegistry
from .services.tokens import HeuristicTokenEstimator, TokenEstimator

__version__ = "0.1.0"

__all__ = [
    "AdmissionEngine",
    "AdmissionLoad",
    "AdmissionRecord",
    "DEFAULT_RESOURCE_QUOTAS",
    "DEFAULT_SUBACCOUNT",
    "HeuristicTokenEstimator",
    "InMemoryWindowStore",
    "InvalidDeregistrationException",
    "LimiterConfigurationException",
    "LimiterException",
    "QuotaOverride",
    "RateLimit",
    "RateLimitInterval",
    "RateLimitRegistry",
    "RecordKind",
    "RedisWindowStore",
    "RequestLimitExceededException",
    "ResourceQuota",
    "Settings",
    "SnowflakeIdGenerator",
    "StoreCircuitOpenException",
    "StoreOperationTimeoutException",
    "StoreUnavailableException",
    "TokenEstimator",
    "TokenLimitExceededException",
    "UnknownLimiterKeyException",
    "WindowStore",
    "WindowUsage",
    "get_settings",
]
