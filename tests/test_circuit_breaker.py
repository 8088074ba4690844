"""Test the circuit breaker guarding outbound payment calls."""
import pytest

from core.resilience import CircuitBreaker, CircuitOpenError, CircuitState


def test_circuit_breaker_initial_state():
    cb = CircuitBreaker()
    assert cb.state == CircuitState.CLOSED
    assert cb.failure_count == 0


@pytest.mark.asyncio
async def test_circuit_breaker_success():
    async def ok():
        return "ok"

    cb = CircuitBreaker()
    assert await cb.call(ok) == "ok"
    assert cb.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_circuit_breaker_retries():
    attempt = 0

    async def failing_then_ok():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise ConnectionError("fail")
        return "success"

    cb = CircuitBreaker(max_retries=3, backoff_base=0.001)
    assert await cb.call(failing_then_ok) == "success"
    assert attempt == 3
    assert cb.failure_count == 0


@pytest.mark.asyncio
async def test_circuit_breaker_reraises_last_error():
    async def always_fails():
        raise ConnectionError("down")

    cb = CircuitBreaker(max_retries=1, backoff_base=0.001)
    with pytest.raises(ConnectionError, match="down"):
        await cb.call(always_fails)
    assert cb.failure_count == 1


@pytest.mark.asyncio
async def test_circuit_breaker_does_not_retry_other_errors():
    calls = 0

    async def bad_request():
        nonlocal calls
        calls += 1
        raise ValueError("bad")

    cb = CircuitBreaker(max_retries=3, retry_on=(ConnectionError,))
    with pytest.raises(ValueError):
        await cb.call(bad_request)
    assert calls == 1


@pytest.mark.asyncio
async def test_circuit_breaker_opens():
    async def always_fails():
        raise ConnectionError("down")

    cb = CircuitBreaker(failure_threshold=2, max_retries=0, recovery_timeout=60)
    for _ in range(2):
        with pytest.raises(ConnectionError):
            await cb.call(always_fails)

    assert cb.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await cb.call(always_fails)


@pytest.mark.asyncio
async def test_circuit_breaker_raises_error_from_final_attempt():
    attempt = 0

    async def failing():
        nonlocal attempt
        attempt += 1
        raise ConnectionError(f"attempt {attempt}")

    cb = CircuitBreaker(max_retries=2, backoff_base=0.001)
    with pytest.raises(ConnectionError, match="attempt 3"):
        await cb.call(failing)
    assert cb.failure_count == 1
