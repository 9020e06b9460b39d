"""
Store Circuit Breaker

Fails fast once the window store has failed repeatedly and lets trial
round trips through after a cool-down. It never retries on the
caller's behalf: every failure is re-raised unchanged.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from .exceptions import StoreCircuitOpenException

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for StoreCircuitBreaker.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds an open circuit rejects calls.
        success_threshold: Trial successes needed to close it again.
        operation_timeout: Upper bound on one store round trip, in seconds.
        failure_exceptions: Errors that count as store failures.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    success_threshold: int = 3
    operation_timeout: float = 10.0
    failure_exceptions: Tuple[Type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


@dataclass
class CircuitBreakerMetrics:
    calls: int = 0
    successes: int = 0
    failures: int = 0
    rejections: int = 0
    trips: int = 0
    last_failure_at: Optional[float] = None


class StoreCircuitBreaker:
    """Circuit breaker wrapped around every window store round trip."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.metrics = CircuitBreakerMetrics()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at: Optional[float] = None
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._consecutive_failures

    def _set_state(self, state: CircuitState, reason: str) -> None:
        previous, self._state = self._state, state
        self._trial_successes = 0
        if state is CircuitState.OPEN:
            self._opened_at = self._clock()
            self.metrics.trips += 1
            logger.warning(
                "Store circuit opened",
                extra={
                    "previous_state": previous.value,
                    "reason": reason,
                    "consecutive_failures": self._consecutive_failures,
                },
            )
        else:
            if state is CircuitState.CLOSED:
                self._consecutive_failures = 0
                self._opened_at = None
            logger.info(
                f"Store circuit {previous.value} -> {state.value}",
                extra={"reason": reason},
            )

    async def _admit(self) -> None:
        async with self._lock:
            self.metrics.calls += 1
            if self._state is not CircuitState.OPEN:
                return
            if self._clock() - self._opened_at < self.config.recovery_timeout:
                self.metrics.rejections += 1
                raise StoreCircuitOpenException()
            self._set_state(CircuitState.HALF_OPEN, "recovery timeout elapsed")

    async def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Run one store round trip.

        Args:
            func: Callable returning a value or an awaitable
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Raises:
            StoreCircuitOpenException: If the circuit is open
            asyncio.TimeoutError: If the round trip exceeded operation_timeout
            Exception: Whatever func raised
        """
        await self._admit()

        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(
                    result, timeout=self.config.operation_timeout
                )
        except asyncio.TimeoutError:
            await self._on_failure("timeout")
            raise
        except self.config.failure_exceptions as e:
            await self._on_failure(type(e).__name__)
            raise

        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            self.metrics.successes += 1
            if self._state is CircuitState.HALF_OPEN:
                self._trial_successes += 1
                if self._trial_successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED, "trial calls succeeded")
            else:
                self._consecutive_failures = 0

    async def _on_failure(self, failure_type: str) -> None:
        async with self._lock:
            self.metrics.failures += 1
            self.metrics.last_failure_at = self._clock()
            self._consecutive_failures += 1

            if self._state is CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN, f"trial call failed: {failure_type}")
            elif (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.config.failure_threshold
            ):
                self._set_state(CircuitState.OPEN, f"threshold reached: {failure_type}")

    def status(self) -> Dict[str, Any]:
        """Breaker state and counters for health reporting."""
        return {
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "opened_at": self._opened_at,
            "metrics": asdict(self.metrics),
        }

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._set_state(CircuitState.CLOSED, "manual reset")
