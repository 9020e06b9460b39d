"""
Redis Infrastructure Module

Connection management and resilience for the Redis-backed window store.

This module provides:
- RedisConnectionFactory: pooled connections with error mapping
- StoreCircuitBreaker: fail-fast protection for store round trips
- Store exceptions surfaced to limiter callers
"""

from .connection_factory import RedisConnectionFactory
from .circuit_breaker import (
    StoreCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitBreakerMetrics,
)
from .exceptions import (
    StoreException,
    StoreUnavailableException,
    StoreOperationTimeoutException,
    StoreCircuitOpenException,
    StoreConfigurationException,
)

__all__ = [
    "RedisConnectionFactory",
    "StoreCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitBreakerMetrics",
    "StoreException",
    "StoreUnavailableException",
    "StoreOperationTimeoutException",
    "StoreCircuitOpenException",
    "StoreConfigurationException",
]
