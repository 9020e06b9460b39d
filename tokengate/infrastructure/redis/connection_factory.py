"""
Window Store Connections

Connection management for the window store: pooling, health checks and
circuit breaker protection. Maps redis-py transport errors onto
StoreUnavailableException without retrying.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    AuthenticationError as RedisAuthError,
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)

from opentelemetry.instrumentation.redis import RedisInstrumentor

from ...core.config import Settings, get_settings
from .circuit_breaker import CircuitBreakerConfig, CircuitState, StoreCircuitBreaker
from .exceptions import (
    StoreCircuitOpenException,
    StoreConfigurationException,
    StoreOperationTimeoutException,
    StoreUnavailableException,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisConnectionFactory:
    """
    Owns the Redis client used by the window store.

    Either builds a pool from settings or wraps a caller-supplied client.
    Every store round trip goes through execute(), which applies the
    circuit breaker and error mapping.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[Redis] = None,
        circuit_breaker: Optional[StoreCircuitBreaker] = None,
    ):
        self._settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self._owns_client = client is None
        self._circuit_breaker = circuit_breaker or StoreCircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=self._settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=float(self._settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT),
                success_threshold=self._settings.CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
                operation_timeout=self._settings.REDIS_OPERATION_TIMEOUT * 2,
                failure_exceptions=(
                    RedisConnectionError,
                    RedisTimeoutError,
                    ConnectionError,
                    OSError,
                ),
            )
        )
        self._initialized = client is not None
        self._lock = asyncio.Lock()

        if self._owns_client:
            try:
                RedisInstrumentor().instrument()
                logger.info("Redis client tracing enabled")
            except Exception as e:
                logger.warning(
                    f"Redis client tracing unavailable: {e}"
                )

    @property
    def circuit_breaker(self) -> StoreCircuitBreaker:
        return self._circuit_breaker

    async def initialize(self) -> None:
        """Create the pool and verify the server answers."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            try:
                self._pool = ConnectionPool.from_url(
                    self._settings.REDIS_URL,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=self._settings.REDIS_CONNECTION_TIMEOUT,
                    socket_timeout=self._settings.REDIS_OPERATION_TIMEOUT,
                    health_check_interval=self._settings.REDIS_HEALTH_CHECK_INTERVAL,
                    max_connections=self._settings.REDIS_MAX_CONNECTIONS,
                )
            except ValueError as e:
                raise StoreConfigurationException(
                    message=f"Invalid Redis configuration: {e}",
                    config_key="REDIS_URL",
                    original_error=e,
                )

            client = Redis(connection_pool=self._pool)
            try:
                await client.ping()
            except RedisAuthError as e:
                await self._pool.disconnect()
                raise StoreConfigurationException(
                    message="Redis rejected the configured credentials",
                    config_key="REDIS_URL",
                    original_error=e,
                )
            except (RedisConnectionError, RedisTimeoutError, OSError) as e:
                await self._pool.disconnect()
                raise StoreUnavailableException(
                    message="Redis did not answer PING", original_error=e
                )

            self._client = client
            self._initialized = True
            logger.info(
                "Window store connection pool ready",
                extra={"max_connections": self._settings.REDIS_MAX_CONNECTIONS},
            )

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a Redis client.

        Yields:
            Redis client instance

        Raises:
            StoreUnavailableException: If the connection cannot be established
        """
        await self.initialize()
        yield self._client

    async def execute(
        self, operation: str, func: Callable[[Redis], Awaitable[T]]
    ) -> T:
        """
        Run one store round trip under circuit breaker protection.

        Args:
            operation: Operation name for errors and logs
            func: Coroutine function receiving the Redis client

        Raises:
            StoreCircuitOpenException: If the circuit is open
            StoreOperationTimeoutException: If the round trip timed out
            StoreUnavailableException: On any transport failure
        """
        async with self.get_connection() as redis_client:
            try:
                return await self._circuit_breaker.call(func, redis_client)
            except StoreCircuitOpenException:
                raise
            except (RedisTimeoutError, asyncio.TimeoutError) as e:
                logger.error(f"Redis operation '{operation}' timed out: {e}")
                raise StoreOperationTimeoutException(
                    operation=operation,
                    timeout_seconds=self._settings.REDIS_OPERATION_TIMEOUT,
                    original_error=e,
                )
            except (RedisConnectionError, ConnectionError, OSError) as e:
                logger.error(f"Redis connection error during '{operation}': {e}")
                raise StoreUnavailableException(
                    message=f"Redis connection failed during {operation}: {e}",
                    original_error=e,
                )

    async def health_check(self) -> Dict[str, Any]:
        """
        Ping the store and report latency.

        Returns:
            Status dict including the circuit breaker snapshot
        """
        health_status: Dict[str, Any] = {"status": "unhealthy", "timestamp": time.time()}

        try:
            start_time = time.perf_counter()
            await self.execute("ping", lambda client: client.ping())
            health_status["response_time_ms"] = round(
                (time.perf_counter() - start_time) * 1000, 2
            )
            if self._circuit_breaker.state is CircuitState.CLOSED:
                health_status["status"] = "healthy"
            else:
                health_status["status"] = "degraded"
        except StoreUnavailableException as e:
            health_status["error"] = e.message
            logger.error(f"Redis health check failed: {e.message}")

        health_status["circuit_breaker"] = self._circuit_breaker.status()
        return health_status

    async def close(self) -> None:
        """Close the pool if this factory created it."""
        async with self._lock:
            if self._owns_client and self._pool is not None:
                await self._pool.disconnect()
                logger.info("Window store connection pool closed")
                self._pool = None
                self._client = None
                self._initialized = False
