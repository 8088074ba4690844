"""
Storefront Circuit Breaker: Resilience for Outbound Calls

Protects checkout against a misbehaving card processor:
- Transient failures (bounded retry with exponential backoff)
- Cascading failures (open the circuit after repeated failures)
- Fast rejection while open, until the recovery timeout elapses

Only wrap idempotent reads (e.g. fetching a payment) with retries.
"""
from __future__ import annotations
from typing import Awaitable, Callable, Optional, Any
from datetime import datetime, timezone
from enum import Enum
import asyncio

import structlog

logger = structlog.get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitOpenError(RuntimeError):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker with exponential backoff.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        max_retries: int = 1,
        backoff_base: float = 0.2,
        backoff_max: float = 5.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.retry_on = retry_on

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure: Optional[datetime] = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if self._last_failure and (
                datetime.now(timezone.utc) - self._last_failure
            ).total_seconds() > self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        **kwargs,
    ) -> Any:
        """Execute an async function with circuit breaker protection."""

        if self.state == CircuitState.OPEN:
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' OPEN. Retry after {self.recovery_timeout}s"
            )

        for attempt in range(self.max_retries + 1):
            try:
                result = await func(*args, **kwargs)

                # Success, reset circuit
                self._failure_count = 0
                self._state = CircuitState.CLOSED
                return result

            except self.retry_on as e:
                logger.warning(
                    "circuit_call_failed",
                    circuit=self.name,
                    attempt=attempt + 1,
                    error=str(e),
                )
                if attempt >= self.max_retries:
                    # All retries failed
                    self._record_failure()
                    raise
                backoff = min(
                    self.backoff_base * (2 ** attempt),
                    self.backoff_max,
                )
                await asyncio.sleep(backoff)

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure = datetime.now(timezone.utc)

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.error("circuit_opened", circuit=self.name, failures=self._failure_count)
