"""
Recognition pipeline: image in, validated and evaluated expression out.
"""
import asyncio
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..classification import ErrorClassifier, RecoveryStatistics
from ..config import ModerateConfidence, PipelineConfig
from ..exceptions import ClassifiedError, InferenceResponseError
from ..expression import NO_EXPRESSION_SENTINEL, MathExpressionParser
from ..inference.images import DataURLImageValidator, PassthroughPreprocessor
from ..resilience import CircuitBreaker, RetryExecutor, execute_with_timeout
from ..types import (
    ImagePreprocessor,
    ImageSource,
    ImageValidator,
    InferenceResponse,
    InferenceService,
    ParsedExpression,
    ProcessingErrorKind,
    ProcessingResult,
    ProcessingStage,
    ProcessingState,
)
from .state import advance

logger = logging.getLogger(__name__)

AUTO_RETRY_KINDS = frozenset({
    ProcessingErrorKind.LLM_SERVICE_ERROR,
    ProcessingErrorKind.TIMEOUT,
    ProcessingErrorKind.PROCESSING_FAILED,
})

RETRY_SUGGESTIONS: dict[ProcessingErrorKind, tuple[str, ...]] = {
    ProcessingErrorKind.IMAGE_INVALID: (
        "Ensure the image is in a supported format (PNG, JPEG, WEBP)",
        "Check that the image file is not corrupted",
        "Try capturing a new image with better quality",
    ),
    ProcessingErrorKind.INSUFFICIENT_CONFIDENCE: (
        "Improve lighting conditions",
        "Ensure the math expression is clearly visible and in focus",
        "Position the camera closer to the expression",
        "Use a plain background to reduce noise",
        "Try uploading a higher quality image instead",
    ),
    ProcessingErrorKind.PARSING_FAILED: (
        "Ensure the expression uses standard mathematical notation",
        "Write numbers and operators more clearly",
        "Avoid ambiguous symbols or handwriting",
        "Try typing the expression manually if recognition continues to fail",
    ),
    ProcessingErrorKind.LLM_SERVICE_ERROR: (
        "Check your internet connection",
        "Verify your API key is configured correctly",
        "Wait a moment and try again",
        "Check if the LLM service is experiencing issues",
    ),
    ProcessingErrorKind.TIMEOUT: (
        "Check your internet connection speed",
        "Try with a smaller or compressed image",
        "Wait a moment and try again",
    ),
    ProcessingErrorKind.RATE_LIMIT_EXCEEDED: (
        "Wait a few minutes before trying again",
        "Consider upgrading your API plan if this happens frequently",
    ),
    ProcessingErrorKind.VALIDATION_FAILED: (
        "Ensure the expression is mathematically valid",
        "Check for missing operators or operands",
        "Try simplifying the expression",
    ),
    ProcessingErrorKind.PROCESSING_FAILED: (
        "Try using the image upload feature instead of camera capture",
        "Restart the application if the problem persists",
        "Check the debug logs for more information",
    ),
}

ProgressCallback = Callable[[ProcessingState], Any]
ErrorCallback = Callable[[ClassifiedError], Any]


class RecognitionPipeline:
    """Drives one image through capture validation, inference, parsing and evaluation.

    Every failure leaves ``process_image`` as a classified error. Progress is
    reported at fixed checkpoints: 5 (capturing), 15 (preprocessing),
    30 plus 20 per inference retry up to 70 (processing), 80 (parsing),
    90 (validating) and 100 (complete).
    """

    def __init__(
        self,
        inference: InferenceService,
        validator: ImageValidator | None = None,
        preprocessor: ImagePreprocessor | None = None,
        config: PipelineConfig | None = None,
        classifier: ErrorClassifier | None = None,
        statistics: RecoveryStatistics | None = None,
        breaker: CircuitBreaker | None = None,
        parser: MathExpressionParser | None = None,
        on_progress: ProgressCallback | None = None,
        on_error: ErrorCallback | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.inference = inference
        self.config = config or PipelineConfig()
        self.validator = validator or DataURLImageValidator(self.config.max_image_bytes)
        self.preprocessor = preprocessor or PassthroughPreprocessor()
        self.classifier = classifier or ErrorClassifier()
        self.statistics = statistics or RecoveryStatistics(self.classifier.strategy_mapper)
        self.breaker = breaker or CircuitBreaker(
            name="inference",
            failure_threshold=self.config.circuit_breaker.failure_threshold,
            recovery_timeout=self.config.circuit_breaker.recovery_timeout,
        )
        self.parser = parser or MathExpressionParser()
        self.on_progress = on_progress
        self.on_error = on_error
        self._retry = RetryExecutor(
            config=self.config.retry,
            classifier=self.classifier,
            sleep=sleep,
            rng=rng,
        )
        self._state = ProcessingState()
        self._generation = 0

    async def process_image(
        self,
        image: str,
        source: ImageSource | str = ImageSource.CAPTURE,
        previous_error: ClassifiedError | None = None,
    ) -> ProcessingResult:
        """Recognize and evaluate the expression in a data-URL encoded image.

        Args:
            image: Data URL of the image
            source: Where the image came from
            previous_error: The error of the run this call retries, if any;
                its recovery outcome is recorded in the statistics

        Returns:
            ProcessingResult with the normalized expression and its value

        Raises:
            ProcessingError: classified failure of any stage

        """
        source = ImageSource(source)
        generation = self._begin_run()
        start_time = time.monotonic()
        stage = ProcessingStage.CAPTURING
        retry_count = 0

        try:
            self._advance(generation, stage, 5, "Validating image...")
            validation = self.validator.validate_image(image)
            if not validation.is_valid:
                raise self.classifier.create_processing_error(
                    ProcessingErrorKind.IMAGE_INVALID,
                    f"Image validation failed: {', '.join(validation.errors)}",
                    stage,
                )

            stage = ProcessingStage.PREPROCESSING
            self._advance(generation, stage, 15, "Optimizing image for OCR...")
            try:
                preprocessed = self.preprocessor.process_image_for_ocr(
                    image, {"max_image_bytes": self.config.max_image_bytes}
                )
            except Exception as e:
                raise self.classifier.classify_image_failure(e, stage) from e

            stage = ProcessingStage.PROCESSING
            self._advance(generation, stage, 30, "Processing with AI...")
            response, retry_count = await self._run_inference(generation, preprocessed.image_data)

            stage = ProcessingStage.PARSING
            self._advance(generation, stage, 80, "Parsing mathematical expression...")
            parsed = self._parse_response(response)

            stage = ProcessingStage.VALIDATING
            self._advance(generation, stage, 90, "Validating result...")
            result = self._finalize(image, response, parsed, retry_count, start_time, source)

            self._advance(generation, ProcessingStage.COMPLETE, 100, "Processing complete!")
        except asyncio.CancelledError:
            if generation == self._generation:
                self._set_state(ProcessingStage.IDLE, 0, "Processing cancelled")
            raise
        except Exception as e:
            error = self.classifier.classify(e, stage)
            # a superseded run leaves the newer state alone
            if generation == self._generation:
                self._record_failure(error, previous_error)
            if error is e:
                raise
            raise error from e

        if previous_error is not None:
            self.statistics.record_recovery_success(previous_error)
        logger.info(
            f"Recognized {result.recognized_expression!r} = {result.calculation_result} "
            f"(confidence {result.confidence:.2f}, {retry_count} retries, {result.processing_time:.2f}s)"
        )
        return result

    async def _run_inference(self, generation: int, image_data: str) -> tuple[InferenceResponse, int]:
        """Call the inference service with retries; returns the response and failed attempt count."""
        retries = 0

        async def attempt() -> InferenceResponse:
            self._ensure_current(generation, ProcessingStage.PROCESSING)
            return await self.breaker.call(lambda: self._call_inference(image_data))

        def on_retry(failed_attempt: int, error: BaseException, delay: float) -> None:
            nonlocal retries
            retries = failed_attempt
            self._advance(
                generation,
                ProcessingStage.PROCESSING,
                min(30 + 20 * retries, 70),
                f"Retrying OCR processing (attempt {retries + 1})...",
            )

        response = await self._retry.execute_with_retry(attempt, name="image analysis", on_retry=on_retry)
        return response, retries

    async def _call_inference(self, image_data: str) -> InferenceResponse:
        response = await execute_with_timeout(
            self.inference.analyze_image, self.config.inference_timeout, image_data
        )
        if not response.success:
            raise InferenceResponseError(response.error or "Inference service reported a failure")
        return response

    def _parse_response(self, response: InferenceResponse) -> ParsedExpression:
        expression = (response.expression or "").strip()
        if not expression or NO_EXPRESSION_SENTINEL in expression.upper():
            raise self.classifier.classify_parsing_failure(expression)

        parsed = self.parser.parse(expression)
        if not parsed.is_valid:
            raise self.classifier.classify_parsing_failure(expression, parsed.error)
        return parsed

    def _finalize(
        self,
        image: str,
        response: InferenceResponse,
        parsed: ParsedExpression,
        retry_count: int,
        start_time: float,
        source: ImageSource,
    ) -> ProcessingResult:
        evaluation = self.parser.evaluate(parsed.normalized_expression)
        if not evaluation.is_valid:
            raise self.classifier.create_processing_error(
                ProcessingErrorKind.VALIDATION_FAILED,
                f"Expression validation failed: {evaluation.error}",
                ProcessingStage.VALIDATING,
            )

        policy = self.config.confidence
        confidence = response.confidence or 0.0
        if (
            isinstance(confidence, bool)
            or not isinstance(confidence, (int, float))
            or not math.isfinite(confidence)
            or not 0.0 <= confidence <= 1.0
        ):
            raise self.classifier.create_processing_error(
                ProcessingErrorKind.INSUFFICIENT_CONFIDENCE,
                f"Invalid confidence score {confidence!r} reported by the inference service",
                ProcessingStage.VALIDATING,
            )
        if confidence < policy.minimum:
            raise self.classifier.create_processing_error(
                ProcessingErrorKind.INSUFFICIENT_CONFIDENCE,
                f"Low confidence score: {confidence * 100:.1f}%. Please try with a clearer image.",
                ProcessingStage.VALIDATING,
            )

        warnings: list[str] = []
        if confidence < policy.warning:
            message = (
                f"Result accepted but confidence {confidence * 100:.1f}% is below "
                f"the optimal threshold of {policy.warning * 100:.0f}%"
            )
            logger.warning(f"{message} (expression {parsed.normalized_expression!r})")
            if policy.moderate == ModerateConfidence.SURFACE:
                warnings.append(message)

        return ProcessingResult(
            original_image=image,
            recognized_expression=parsed.normalized_expression,
            confidence=confidence,
            calculation_result=evaluation.result,
            processing_time=time.monotonic() - start_time,
            retry_count=retry_count,
            source=source,
            tokens_used=response.tokens_used,
            warnings=tuple(warnings),
        )

    def get_processing_state(self) -> ProcessingState:
        return self._state

    def cancel_processing(self) -> None:
        """Reset to idle; an in-flight run stops at its next stage boundary."""
        self._generation += 1
        self._set_state(ProcessingStage.IDLE, 0, "Processing cancelled")
        logger.info("Processing cancelled")

    def get_retry_suggestions(self, error: ClassifiedError) -> list[str]:
        suggestions: list[str] = []
        if error.retryable:
            suggestions.append("Try processing the image again")
        suggestions.extend(RETRY_SUGGESTIONS.get(error.kind, ()))
        if error.recoverable:
            suggestions.append("This error is recoverable - you can try again immediately")
        return suggestions

    def should_auto_retry(self, error: ClassifiedError, retry_count: int) -> bool:
        """Whether the caller should rerun ``process_image`` without asking the user.

        Error keys whose recorded recovery rate fell below 0.3 are no longer
        retried automatically.
        """
        if retry_count >= self.config.auto_retry_attempts:
            return False
        if error.kind not in AUTO_RETRY_KINDS or not error.retryable:
            return False
        base = self.statistics.strategy_mapper.create_strategy(error)
        return not base.auto_retry or self.statistics.get_optimized_recovery_strategy(error).auto_retry

    def _begin_run(self) -> int:
        self._generation += 1
        if self._state.stage != ProcessingStage.IDLE:
            self._set_state(ProcessingStage.IDLE, 0, "Ready")
        return self._generation

    def _ensure_current(self, generation: int, stage: ProcessingStage) -> None:
        if generation != self._generation:
            raise self.classifier.create_processing_error(
                ProcessingErrorKind.PROCESSING_FAILED,
                "Processing was cancelled",
                stage,
                retryable=False,
                suggested_action="Start a new recognition when ready",
            )

    def _advance(self, generation: int, stage: ProcessingStage, progress: float, operation: str) -> None:
        self._ensure_current(generation, stage)
        self._set_state(stage, progress, operation)

    def _set_state(self, stage: ProcessingStage, progress: float, operation: str) -> None:
        state, error = advance(self._state, stage, progress, operation, classifier=self.classifier)
        if error is not None:
            raise error
        self._state = state
        self._notify(self.on_progress, state)

    def _record_failure(self, error: ClassifiedError, previous_error: ClassifiedError | None) -> None:
        self.statistics.record_error(error, attempt_number=error.attempts or 1)
        if previous_error is not None:
            self.statistics.record_recovery_failure(previous_error)
        self._set_state(ProcessingStage.ERROR, 0, "Processing failed")
        self._notify(self.on_error, error)

    @staticmethod
    def _notify(callback: Callable[[Any], Any] | None, payload: Any) -> None:
        # observer failures never change the outcome of a run
        if callback is None:
            return
        try:
            callback(payload)
        except Exception:
            logger.exception(f"{getattr(callback, '__name__', 'callback')} raised; ignoring")
