"""
Built-in quota table for chat-completion models.
"""

from types import MappingProxyType
from typing import Mapping

from .value_objects import RateLimit, RateLimitInterval, ResourceQuota


def _per_minute(tokens: int, requests: int) -> ResourceQuota:
    return ResourceQuota(
        token=RateLimit(count=tokens, interval=RateLimitInterval.MINUTE),
        request=RateLimit(count=requests, interval=RateLimitInterval.MINUTE),
    )


DEFAULT_RESOURCE_QUOTAS: Mapping[str, ResourceQuota] = MappingProxyType(
    {
        "gpt-3.5-turbo": _per_minute(90000, 3500),
        "gpt-3.5-turbo-0301": _per_minute(90000, 3500),
        "gpt-3.5-turbo-0613": _per_minute(90000, 3500),
        "gpt-3.5-turbo-16k": _per_minute(180000, 3500),
        "gpt-3.5-turbo-16k-0613": _per_minute(180000, 3500),
        "gpt-4": _per_minute(40000, 200),
        "gpt-4-0314": _per_minute(40000, 200),
        "gpt-4-0613": _per_minute(40000, 200),
    }
)
