"""
Storefront Core Resilience: Fault Tolerance Primitives.

Provides reliability patterns for request handling and outbound calls:
- CircuitBreaker: Bounded retry and fast failure for external services
- RateLimiter: Bounded-memory fixed-window request limiting
"""
from core.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)
from core.resilience.rate_limit import (
    RateLimitDecision,
    RateLimiter,
)

__all__ = [
    # Circuit breaker
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    # Rate limiting
    "RateLimitDecision",
    "RateLimiter",
]
