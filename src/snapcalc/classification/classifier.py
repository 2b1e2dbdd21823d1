"""Main error classifier implementation."""
import asyncio
import logging
from typing import Any

from ..config import RetryConfig
from ..exceptions import (
    CameraError,
    CircuitBreakerOpenError,
    ClassifiedError,
    InferenceResponseError,
    InferenceTimeoutError,
    ProcessingError,
)
from ..expression.parser import NO_EXPRESSION_SENTINEL
from ..types import CameraErrorKind, ProcessingErrorKind, ProcessingStage
from .categories import ErrorPattern, get_profile
from .patterns import (
    CAMERA_PATTERNS,
    EXHAUSTION_PATTERNS,
    IMAGE_PATTERNS,
    INFERENCE_PATTERNS,
    NON_RETRYABLE_INDICATORS,
    RETRYABLE_INDICATORS,
)
from .strategies import RecoveryStrategy, StrategyConfig, StrategyMapper

logger = logging.getLogger(__name__)


class ErrorClassifier:
    """Maps raw failures onto the closed camera and processing error kinds."""

    def __init__(
        self,
        custom_patterns: list[ErrorPattern] | None = None,
        custom_strategies: dict[ProcessingErrorKind | CameraErrorKind, StrategyConfig] | None = None,
    ):
        """Initialize classifier with patterns and strategies.

        Args:
            custom_patterns: Extra inference-failure patterns, checked after the built-in ones
            custom_strategies: Per-kind recovery strategy overrides

        """
        self.inference_patterns = INFERENCE_PATTERNS.copy()
        if custom_patterns:
            self.inference_patterns.extend(custom_patterns)
        self.strategy_mapper = StrategyMapper(custom_strategies)

    def create_processing_error(
        self,
        kind: ProcessingErrorKind,
        message: str,
        stage: ProcessingStage,
        original_cause: BaseException | None = None,
        suggested_action: str | None = None,
        recoverable: bool | None = None,
        retryable: bool | None = None,
        **annotations: Any,
    ) -> ProcessingError:
        """Create a processing error, filling unset fields from the kind's defaults."""
        profile = get_profile(kind)
        error = ProcessingError(
            kind,
            message,
            stage,
            recoverable=profile.recoverable if recoverable is None else recoverable,
            retryable=profile.retryable if retryable is None else retryable,
            suggested_action=suggested_action or profile.suggested_action,
            original_cause=original_cause,
            **annotations,
        )
        logger.error(
            f"[ProcessingError] {kind.value} at {stage.value}: {message} "
            f"(recoverable={error.recoverable}, retryable={error.retryable}, "
            f"cause={original_cause!s})"
        )
        return error

    def create_camera_error(
        self,
        kind: CameraErrorKind,
        message: str,
        original_cause: BaseException | None = None,
        suggested_action: str | None = None,
        recoverable: bool | None = None,
        retryable: bool | None = None,
    ) -> CameraError:
        profile = get_profile(kind)
        error = CameraError(
            kind,
            message,
            recoverable=profile.recoverable if recoverable is None else recoverable,
            retryable=profile.retryable if retryable is None else retryable,
            suggested_action=suggested_action or profile.suggested_action,
            original_cause=original_cause,
        )
        logger.error(f"[CameraError] {kind.value}: {message} (recoverable={error.recoverable})")
        return error

    def classify_inference_failure(
        self,
        error: BaseException,
        stage: ProcessingStage = ProcessingStage.PROCESSING,
        **annotations: Any,
    ) -> ProcessingError:
        """Sub-classify an opaque inference failure by its message and status."""
        if isinstance(error, ProcessingError):
            return error
        if isinstance(error, CircuitBreakerOpenError):
            return self.create_processing_error(
                ProcessingErrorKind.LLM_SERVICE_ERROR,
                f"Image analysis service is temporarily unavailable; retry in {error.timeout_remaining:.0f}s",
                stage,
                original_cause=error,
                suggested_action="Wait for the service to recover or enter the expression manually",
                **annotations,
            )

        pattern = self._best_match(self.inference_patterns, error)
        if pattern is None:
            return self.create_processing_error(
                ProcessingErrorKind.LLM_SERVICE_ERROR,
                "LLM service error occurred",
                stage,
                original_cause=error,
                suggested_action="Try again with a clearer image",
                **annotations,
            )
        return self.create_processing_error(
            pattern.kind,
            pattern.message,
            stage,
            original_cause=error,
            suggested_action=pattern.suggested_action,
            retryable=pattern.retryable,
            **annotations,
        )

    def classify_retry_exhaustion(
        self,
        error: BaseException,
        operation: str,
        attempts: int,
        stage: ProcessingStage = ProcessingStage.PROCESSING,
    ) -> ProcessingError:
        """Classify the last failure of an operation that used up its attempts."""
        pattern = self._best_match(EXHAUSTION_PATTERNS, error)
        if pattern is None:
            kind = ProcessingErrorKind.LLM_SERVICE_ERROR
            message = f"{operation} failed after {attempts} attempts"
            suggested_action = "Check your internet connection and try again"
        else:
            kind = pattern.kind
            message = pattern.message
            suggested_action = pattern.suggested_action

        return self.create_processing_error(
            kind,
            message,
            stage,
            original_cause=error,
            suggested_action=suggested_action,
            operation=operation,
            attempts=attempts,
            retry_count=attempts,
        )

    def classify_image_failure(
        self,
        error: BaseException,
        stage: ProcessingStage = ProcessingStage.PREPROCESSING,
    ) -> ProcessingError:
        """Classify a validation or preprocessing failure as image-invalid."""
        if isinstance(error, ProcessingError):
            return error
        pattern = self._best_match(IMAGE_PATTERNS, error)
        return self.create_processing_error(
            ProcessingErrorKind.IMAGE_INVALID,
            pattern.message if pattern else "Image processing failed",
            stage,
            original_cause=error,
            suggested_action=pattern.suggested_action if pattern else "Try capturing a new image",
        )

    def classify_parsing_failure(
        self,
        expression: str | None,
        cause: BaseException | str | None = None,
    ) -> ProcessingError:
        """Classify an expression that could not be extracted or parsed."""
        if isinstance(cause, str):
            cause = ValueError(cause)

        if not expression or not expression.strip():
            message = "No mathematical expression was extracted from the image."
            suggested_action = "Capture a clearer image with visible mathematical expressions"
        elif NO_EXPRESSION_SENTINEL in expression.upper():
            message = "No mathematical content detected in the captured image."
            suggested_action = "Ensure the image contains mathematical expressions and try again"
        else:
            message = (
                f'Invalid mathematical expression: "{expression}". '
                "The expression contains unsupported characters or syntax."
            )
            if cause is not None:
                message = f"{message} {cause}"
            suggested_action = (
                "Capture an image with standard mathematical notation (+, -, *, /, parentheses, numbers)"
            )

        return self.create_processing_error(
            ProcessingErrorKind.PARSING_FAILED,
            message,
            ProcessingStage.PARSING,
            original_cause=cause,
            suggested_action=suggested_action,
        )

    def classify_camera_failure(self, error: BaseException) -> CameraError:
        """Classify a capture-side failure."""
        if isinstance(error, CameraError):
            return error
        pattern = self._best_match(CAMERA_PATTERNS, error)
        if pattern is None:
            return self.create_camera_error(
                CameraErrorKind.CAPTURE_FAILED,
                f"Failed to capture image: {error}",
                original_cause=error,
            )
        return self.create_camera_error(
            pattern.kind,
            pattern.message,
            original_cause=error,
            suggested_action=pattern.suggested_action,
        )

    def classify(self, error: BaseException, stage: ProcessingStage) -> ClassifiedError:
        """Classify any exception raised while ``stage`` was active.

        Classified errors pass through unchanged; anything unrecognized
        becomes processing-failed tagged with the stage.
        """
        if isinstance(error, ClassifiedError):
            return error
        if isinstance(error, CircuitBreakerOpenError):
            return self.classify_inference_failure(error, stage)
        return self.create_processing_error(
            ProcessingErrorKind.PROCESSING_FAILED,
            f"Unexpected error during {stage.value}: {error}",
            stage,
            original_cause=error,
        )

    def is_retryable_failure(self, error: BaseException, config: RetryConfig | None = None) -> bool:
        """Decide whether a raw failure is worth another attempt."""
        if isinstance(error, CircuitBreakerOpenError):
            return False
        if isinstance(error, ClassifiedError):
            return error.retryable

        message = str(error).lower()
        if any(indicator in message for indicator in NON_RETRYABLE_INDICATORS):
            return False
        if isinstance(error, InferenceResponseError):
            return True

        status = getattr(error, "status", None)
        if config is not None and status is not None and status in config.retryable_status_codes:
            return True
        if isinstance(error, (InferenceTimeoutError, asyncio.TimeoutError, ConnectionError)):
            return True
        if config is not None and any(kind in message for kind in config.retryable_error_types):
            return True
        return any(indicator in message for indicator in RETRYABLE_INDICATORS)

    def create_recovery_strategy(self, error: ClassifiedError) -> RecoveryStrategy:
        return self.strategy_mapper.create_strategy(error)

    def get_user_friendly_message(self, error: ClassifiedError) -> str:
        return get_profile(error.kind).user_message

    def get_recovery_instructions(self, error: ClassifiedError) -> list[str]:
        """Ordered recovery instructions for display."""
        instructions: list[str] = []
        if error.suggested_action:
            instructions.append(error.suggested_action)
        if error.recoverable:
            instructions.append("You can try the operation again")
        if error.retryable:
            instructions.append("The system will automatically retry this operation")
        instructions.extend(get_profile(error.kind).troubleshooting)
        return instructions

    @staticmethod
    def _best_match(patterns: list[ErrorPattern], error: BaseException) -> ErrorPattern | None:
        best: tuple[ErrorPattern, float] | None = None
        for pattern in patterns:
            score = pattern.matches(error)
            if score > 0 and (best is None or score > best[1]):
                best = (pattern, score)
        if best:
            logger.debug(f"Matched {type(error).__name__} to {best[0].kind.value} with score {best[1]:.2f}")
        return best[0] if best else None
