"""
Circuit Breaker for the remote video API

Stops hammering the upstream API while it is failing. Every tracked operation
polls once per tick, so an outage would otherwise multiply into a flood of
doomed requests.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Failing, requests are rejected immediately
- HALF_OPEN: Testing recovery, limited requests allowed
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""
    failure_threshold: int = 5  # Consecutive failures before opening
    recovery_timeout: float = 30.0  # Seconds before trying half-open
    half_open_max_calls: int = 3
    success_threshold: int = 2  # Successes in half-open to close
    excluded_exceptions: tuple = ()  # Exceptions that don't trip the breaker


class CircuitBreakerOpen(Exception):
    """Raised when the breaker is open and the call is rejected."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker is OPEN for {service_name}. "
            f"Retry after {retry_after:.1f} seconds."
        )


class CircuitBreaker:
    """
    Circuit breaker owned by a single client instance.

    Usage:
        breaker = CircuitBreaker("gemini")
        result = await breaker.call(fetch_status, name)
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.state_changed_at = time.monotonic()
        self.total_calls = 0
        self.total_failures = 0
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def _transition_to(self, new_state: CircuitState):
        old_state = self.state
        self.state = new_state
        self.state_changed_at = time.monotonic()

        if new_state == CircuitState.HALF_OPEN:
            self.half_open_calls = 0
            self.success_count = 0

        logger.info(
            f"Circuit breaker [{self.service_name}]: {old_state.value} -> {new_state.value}"
        )

    async def _before_call(self):
        async with self._lock:
            self.total_calls += 1

            if self.state == CircuitState.OPEN:
                elapsed = time.monotonic() - self.state_changed_at
                if elapsed >= self.config.recovery_timeout:
                    self._transition_to(CircuitState.HALF_OPEN)
                else:
                    raise CircuitBreakerOpen(
                        self.service_name, self.config.recovery_timeout - elapsed
                    )

            if self.state == CircuitState.HALF_OPEN:
                if self.half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpen(self.service_name, self.config.recovery_timeout)
                self.half_open_calls += 1

    async def _on_success(self):
        async with self._lock:
            self.success_count += 1
            self.failure_count = 0

            if self.state == CircuitState.HALF_OPEN:
                if self.success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    async def _on_failure(self, error: Exception):
        if isinstance(error, self.config.excluded_exceptions):
            return

        async with self._lock:
            self.failure_count += 1
            self.total_failures += 1

            if self.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif self.state == CircuitState.CLOSED:
                if self.failure_count >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN)

            logger.warning(
                f"Circuit breaker [{self.service_name}] failure: {error}. "
                f"Failure count: {self.failure_count}/{self.config.failure_threshold}"
            )

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Execute an async function with circuit breaker protection.

        Raises:
            CircuitBreakerOpen: If the circuit is open
            Exception: Any exception from the function
        """
        await self._before_call()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self._on_failure(e)
            raise

        await self._on_success()
        return result

    def reset(self):
        """Manually reset the circuit breaker to closed state."""
        self._transition_to(CircuitState.CLOSED)
        self.failure_count = 0
        self.success_count = 0

    def get_status(self) -> dict:
        """Get current status as a dictionary."""
        return {
            "service": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
        }
