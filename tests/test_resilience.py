"""Tests for backoff, circuit breaker and retry executor."""
import asyncio
import random

import pytest

from conftest import RecordingSleep, server_error
from snapcalc.config import PipelineConfig, RetryConfig
from snapcalc.exceptions import CircuitBreakerOpenError, InferenceServiceError, InferenceTimeoutError, ProcessingError
from snapcalc.resilience import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitStatus,
    ExponentialBackoffStrategy,
    RetryExecutor,
    execute_with_timeout,
)
from snapcalc.types import ProcessingErrorKind, ProcessingStage


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class FlakyOperation:
    """Callable that fails a given number of times before succeeding."""

    def __init__(self, failures, error_factory=server_error, result="ok"):
        self.failures = failures
        self.error_factory = error_factory
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return self.result


class TestExponentialBackoff:
    """Test exponential backoff delays."""

    def test_without_jitter(self):
        """Test the plain exponential sequence."""
        strategy = ExponentialBackoffStrategy(base_delay=1.0, backoff_multiplier=2.0, jitter=False)

        assert [strategy.calculate_delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        """Test that delays never exceed max_delay."""
        strategy = ExponentialBackoffStrategy(base_delay=1.0, max_delay=5.0, jitter=False)

        assert strategy.calculate_delay(10) == 5.0

    def test_seeded_jitter_is_bounded_and_non_decreasing(self):
        """Test jittered delays with a fixed seed."""
        strategy = ExponentialBackoffStrategy(base_delay=1.0, max_delay=30.0, rng=random.Random(7))
        delays = [strategy.calculate_delay(n) for n in range(1, 9)]

        assert delays == sorted(delays)
        assert all(delay <= 30.0 for delay in delays)
        assert 1.0 <= delays[0] <= 1.3

    def test_same_seed_same_delays(self):
        """Test that a seeded generator makes delays reproducible."""
        first = ExponentialBackoffStrategy(rng=random.Random(42))
        second = ExponentialBackoffStrategy(rng=random.Random(42))

        assert [first.calculate_delay(n) for n in range(1, 5)] == [second.calculate_delay(n) for n in range(1, 5)]

    def test_from_config(self):
        """Test building a strategy from retry config."""
        strategy = ExponentialBackoffStrategy.from_config(
            RetryConfig(base_delay=0.5, max_delay=10.0, backoff_multiplier=3.0, jitter=False)
        )

        assert strategy.calculate_delay(3) == 4.5
        assert "multiplier=3.0" in strategy.name


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker("inference", failure_threshold=2, recovery_timeout=10.0, clock=clock)

    async def _fail(self, breaker):
        with pytest.raises(RuntimeError):
            await breaker.call(FlakyOperation(1, lambda: RuntimeError("down")))

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        """Test that reaching the threshold opens the circuit."""
        await self._fail(breaker)
        assert breaker.state == CircuitStatus.CLOSED

        await self._fail(breaker)
        assert breaker.state == CircuitStatus.OPEN
        assert breaker.get_state().failure_count == 2

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self, breaker, clock):
        """Test that an open circuit never invokes the operation."""
        await self._fail(breaker)
        await self._fail(breaker)
        clock.now += 4.0
        operation = FlakyOperation(0)

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.call(operation)

        assert operation.calls == 0
        assert exc_info.value.timeout_remaining == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_single_trial_after_timeout(self, breaker, clock):
        """Test that exactly one trial call is admitted once the timeout elapses."""
        await self._fail(breaker)
        await self._fail(breaker)
        clock.now += 10.0

        assert breaker.can_execute() == (True, None)
        assert breaker.state == CircuitStatus.HALF_OPEN
        allowed, _ = breaker.can_execute()
        assert allowed is False

    @pytest.mark.asyncio
    async def test_trial_success_closes(self, breaker, clock):
        """Test recovery after a successful trial."""
        await self._fail(breaker)
        await self._fail(breaker)
        clock.now += 10.0

        assert await breaker.call(FlakyOperation(0)) == "ok"
        assert breaker.state == CircuitStatus.CLOSED
        assert breaker.get_state().failure_count == 0

    @pytest.mark.asyncio
    async def test_trial_failure_reopens(self, breaker, clock):
        """Test that a failed trial reopens the circuit."""
        await self._fail(breaker)
        await self._fail(breaker)
        clock.now += 10.0

        await self._fail(breaker)

        assert breaker.state == CircuitStatus.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            await breaker.call(FlakyOperation(0))

    @pytest.mark.asyncio
    async def test_cancelled_trial_is_released(self, breaker, clock):
        """Test that a cancelled trial lets another trial through."""
        await self._fail(breaker)
        await self._fail(breaker)
        clock.now += 10.0

        async def cancelled():
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await breaker.call(cancelled)

        assert breaker.state == CircuitStatus.HALF_OPEN
        assert await breaker.call(FlakyOperation(0)) == "ok"

    @pytest.mark.asyncio
    async def test_sync_operation(self, breaker):
        """Test guarding a plain function."""
        assert await breaker.call(lambda: 42) == 42

    def test_reset(self, breaker):
        """Test manual reset."""
        breaker.record_failure()
        breaker.record_failure()
        breaker.reset()

        assert breaker.get_state().to_dict() == {
            "state": "closed",
            "failure_count": 0,
            "last_failure_time": None,
        }


class TestCircuitBreakerRegistry:
    """Test the per-dependency breaker registry."""

    def test_get_returns_same_breaker(self):
        """Test that breakers are created once per name."""
        registry = CircuitBreakerRegistry()

        assert registry.get("inference") is registry.get("inference")
        assert registry.get("inference") is not registry.get("upload")

    def test_reset_all(self):
        """Test resetting every breaker."""
        registry = CircuitBreakerRegistry()
        breaker = registry.get("inference")
        for _ in range(5):
            breaker.record_failure()
        assert breaker.state == CircuitStatus.OPEN

        registry.reset_all()

        assert registry.get_states()["inference"].state == CircuitStatus.CLOSED


class TestRetryExecutor:
    """Test retry with backoff."""

    @pytest.fixture
    def executor(self, sleep):
        return RetryExecutor(RetryConfig(jitter=False), sleep=sleep)

    @pytest.mark.asyncio
    async def test_success_without_retry(self, executor, sleep):
        """Test that a successful call is not retried."""
        operation = FlakyOperation(0)

        assert await executor.execute_with_retry(operation, "image analysis") == "ok"
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, executor, sleep):
        """Test recovery and the backoff delays used."""
        operation = FlakyOperation(2)

        assert await executor.execute_with_retry(operation, "image analysis") == "ok"
        assert operation.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_is_classified(self, executor):
        """Test that three server errors become an llm-service-error."""
        operation = FlakyOperation(5)

        with pytest.raises(ProcessingError) as exc_info:
            await executor.execute_with_retry(operation, "image analysis")

        error = exc_info.value
        assert operation.calls == 3
        assert error.kind == ProcessingErrorKind.LLM_SERVICE_ERROR
        assert error.retry_count == 3
        assert error.operation == "image analysis"
        assert isinstance(error.__cause__, InferenceServiceError)

    @pytest.mark.asyncio
    async def test_authentication_failure_aborts(self, executor, sleep):
        """Test that a non-retryable failure is not retried."""
        operation = FlakyOperation(
            5, lambda: InferenceServiceError("Authentication failed: API key not valid", status=401)
        )

        with pytest.raises(ProcessingError) as exc_info:
            await executor.execute_with_retry(operation, "image analysis")

        assert operation.calls == 1
        assert sleep.delays == []
        assert exc_info.value.retryable is False
        assert exc_info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_classified_errors_propagate_unchanged(self, executor):
        """Test that a non-retryable classified error is re-raised as is."""
        original = executor.classifier.create_processing_error(
            ProcessingErrorKind.PARSING_FAILED, "bad", ProcessingStage.PARSING
        )

        async def operation():
            raise original

        with pytest.raises(ProcessingError) as exc_info:
            await executor.execute_with_retry(operation)

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, executor):
        """Test that the callback sees each failed attempt."""
        seen = []

        async def on_retry(attempt, error, delay):
            seen.append((attempt, type(error).__name__, delay))

        await executor.execute_with_retry(FlakyOperation(2), "image analysis", on_retry=on_retry)

        assert seen == [(1, "InferenceServiceError", 1.0), (2, "InferenceServiceError", 2.0)]

    @pytest.mark.asyncio
    async def test_attempts_never_exceed_max(self):
        """Test a single-attempt configuration."""
        sleep = RecordingSleep()
        executor = RetryExecutor(RetryConfig(max_attempts=1), sleep=sleep)
        operation = FlakyOperation(5)

        with pytest.raises(ProcessingError):
            await executor.execute_with_retry(operation)

        assert operation.calls == 1
        assert sleep.delays == []

    def test_for_operation(self):
        """Test per-operation presets."""
        config = PipelineConfig()

        assert RetryExecutor.for_operation("upload", config).config.max_attempts == 2
        assert RetryExecutor.for_operation("unknown", config).config == config.generic_retry


class TestExecuteWithTimeout:
    """Test the per-call time budget."""

    @pytest.mark.asyncio
    async def test_async_call_within_budget(self):
        """Test a coroutine finishing in time."""
        async def analyze(value):
            return value * 2

        assert await execute_with_timeout(analyze, 1.0, 21) == 42

    @pytest.mark.asyncio
    async def test_async_call_times_out(self):
        """Test that a slow coroutine raises InferenceTimeoutError."""
        async def slow():
            await asyncio.sleep(5)

        with pytest.raises(InferenceTimeoutError) as exc_info:
            await execute_with_timeout(slow, 0.01)

        assert exc_info.value.status == 408
        assert "timeout" in str(exc_info.value).lower()

    @pytest.mark.asyncio
    async def test_sync_call(self):
        """Test that plain functions run in an executor."""
        assert await execute_with_timeout(lambda a, b: a + b, 1.0, 2, 3) == 5

    @pytest.mark.asyncio
    async def test_no_timeout(self):
        """Test running without a budget."""
        async def analyze():
            return "done"

        assert await execute_with_timeout(analyze, None) == "done"
