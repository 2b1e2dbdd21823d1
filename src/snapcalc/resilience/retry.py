"""Retry-with-backoff executor for network operations."""
import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from ..classification import ErrorClassifier
from ..config import PipelineConfig, RetryConfig
from ..exceptions import ClassifiedError, InferenceTimeoutError
from ..types import ProcessingStage
from .backoff import BaseStrategy, ExponentialBackoffStrategy

logger = logging.getLogger(__name__)

RetryCallback = Callable[[int, BaseException, float], Any]


async def execute_with_timeout(func: Callable, timeout: float | None, *args: Any, **kwargs: Any) -> Any:
    """Run a sync or async callable, bounded by ``timeout`` seconds.

    Raises:
        InferenceTimeoutError: if the call does not finish in time

    """
    try:
        if inspect.iscoroutinefunction(func):
            if timeout is None:
                return await func(*args, **kwargs)
            return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)

        loop = asyncio.get_running_loop()
        call = loop.run_in_executor(None, lambda: func(*args, **kwargs))
        if timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise InferenceTimeoutError(timeout) from None


class RetryExecutor:
    """Retries failing operations with exponential backoff.

    Only failures the classifier deems retryable are retried. Anything else
    aborts at once, and running out of attempts raises a classified
    ProcessingError annotated with the operation name and attempt count.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        classifier: ErrorClassifier | None = None,
        backoff: BaseStrategy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
        stage: ProcessingStage = ProcessingStage.PROCESSING,
    ):
        self.config = config or RetryConfig()
        self.classifier = classifier or ErrorClassifier()
        self.backoff = backoff or ExponentialBackoffStrategy.from_config(self.config, rng=rng)
        self.stage = stage
        self._sleep = sleep

    @classmethod
    def for_operation(
        cls,
        operation: str,
        config: PipelineConfig | None = None,
        **kwargs: Any,
    ) -> "RetryExecutor":
        """Build an executor for one operation class: inference, upload or generic."""
        pipeline_config = config or PipelineConfig()
        return cls(config=pipeline_config.retry_config_for(operation), **kwargs)

    async def execute_with_retry(
        self,
        operation: Callable[[], Any],
        name: str = "network-operation",
        on_retry: RetryCallback | None = None,
    ) -> Any:
        """Execute an operation, retrying retryable failures.

        Args:
            operation: Zero-argument callable; may return an awaitable
            name: Operation name used in logs and error annotations
            on_retry: Called as ``on_retry(failed_attempt, error, delay)`` before
                each backoff sleep; may be a coroutine function

        Returns:
            The operation's result

        Raises:
            ClassifiedError: on a non-retryable failure or when attempts run out

        """
        max_attempts = max(1, self.config.max_attempts)
        attempt = 0
        last_error: BaseException | None = None

        while attempt < max_attempts:
            attempt += 1
            logger.info(f"Attempting {name} ({attempt}/{max_attempts})")

            try:
                result = operation()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                last_error = e
                logger.warning(f"{name} failed on attempt {attempt}: {e}")

                if not self.classifier.is_retryable_failure(e, self.config):
                    logger.error(f"{name} failed with a non-retryable error after {attempt} attempts")
                    if isinstance(e, ClassifiedError):
                        raise
                    raise self.classifier.classify_inference_failure(
                        e,
                        self.stage,
                        operation=name,
                        attempts=attempt,
                        retry_count=attempt,
                    ) from e

                if attempt >= max_attempts:
                    break

                delay = self.backoff.calculate_delay(attempt)
                logger.info(f"Retrying {name} in {delay:.2f}s using {self.backoff.name}")
                if on_retry is not None:
                    callback_result = on_retry(attempt, e, delay)
                    if inspect.isawaitable(callback_result):
                        await callback_result
                await self._sleep(delay)
                continue

            if attempt > 1:
                logger.info(f"{name} succeeded on attempt {attempt}")
            return result

        logger.error(f"{name} failed permanently after {attempt} attempts")
        raise self.classifier.classify_retry_exhaustion(last_error, name, attempt, self.stage) from last_error
