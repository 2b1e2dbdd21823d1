"""
Shared type definitions for the recognition pipeline.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol


class ProcessingStage(Enum):
    """Stages of a single recognition run."""
    IDLE = "idle"
    CAPTURING = "capturing"
    PREPROCESSING = "preprocessing"
    PROCESSING = "processing"
    PARSING = "parsing"
    VALIDATING = "validating"
    COMPLETE = "complete"
    ERROR = "error"


class CameraErrorKind(Enum):
    """Closed set of capture-side failure kinds."""
    PERMISSION_DENIED = "permission-denied"
    HARDWARE_UNAVAILABLE = "hardware-unavailable"
    PLATFORM_UNSUPPORTED = "platform-unsupported"
    CAPTURE_FAILED = "capture-failed"
    PROCESSING_FAILED = "processing-failed"
    NETWORK_ERROR = "network-error"
    CONFIGURATION_ERROR = "configuration-error"


class ProcessingErrorKind(Enum):
    """Closed set of pipeline failure kinds."""
    IMAGE_INVALID = "image-invalid"
    LLM_SERVICE_ERROR = "llm-service-error"
    PARSING_FAILED = "parsing-failed"
    VALIDATION_FAILED = "validation-failed"
    TIMEOUT = "timeout"
    RATE_LIMIT_EXCEEDED = "rate-limit-exceeded"
    INSUFFICIENT_CONFIDENCE = "insufficient-confidence"
    PROCESSING_FAILED = "processing-failed"


class ExpressionComplexity(Enum):
    """Rough size of a parsed expression."""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class ImageSource(Enum):
    """Where the image handed to the pipeline came from."""
    CAPTURE = "capture"
    UPLOAD = "upload"


@dataclass(frozen=True)
class ProcessingState:
    """Observable state of a pipeline run.

    ``progress`` is a percentage from 0 to 100.
    """
    stage: ProcessingStage = ProcessingStage.IDLE
    progress: float = 0.0
    current_operation: str = "Ready"
    start_time: float | None = None
    estimated_remaining: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "progress": self.progress,
            "current_operation": self.current_operation,
            "start_time": self.start_time,
            "estimated_remaining": self.estimated_remaining,
        }


@dataclass(frozen=True)
class ParsedExpression:
    """Result of parsing a raw expression string."""
    is_valid: bool
    normalized_expression: str
    operands: tuple[int | float, ...] = ()
    operators: tuple[str, ...] = ()
    complexity: ExpressionComplexity = ExpressionComplexity.SIMPLE
    error: str | None = None


@dataclass(frozen=True)
class Evaluation:
    """Result of evaluating an expression."""
    is_valid: bool
    result: int | float | None = None
    error: str | None = None


@dataclass
class InferenceResponse:
    """Response returned by an inference collaborator.

    Treated as untrusted: the pipeline re-validates everything in it.
    """
    success: bool
    expression: str | None = None
    confidence: float | None = None
    tokens_used: int | None = None
    error: str | None = None
    processing_time: float | None = None


@dataclass(frozen=True)
class ImageValidation:
    is_valid: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class PreprocessedImage:
    image_data: str
    original_size: int
    processed_size: int


@dataclass(frozen=True)
class ProcessingResult:
    """Successful outcome of a recognition run."""
    original_image: str
    recognized_expression: str
    confidence: float
    calculation_result: int | float | None
    processing_time: float
    retry_count: int
    source: ImageSource
    tokens_used: int | None = None
    timestamp: float = field(default_factory=time.time)
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "original_image": self.original_image,
            "recognized_expression": self.recognized_expression,
            "confidence": self.confidence,
            "calculation_result": self.calculation_result,
            "processing_time": self.processing_time,
            "retry_count": self.retry_count,
            "source": self.source.value,
            "tokens_used": self.tokens_used,
            "timestamp": self.timestamp,
            "warnings": list(self.warnings),
        }


class InferenceService(Protocol):
    """Protocol for vision-language inference collaborators."""

    async def analyze_image(self, image_b64: str, prompt: str | None = None) -> InferenceResponse:
        """Turn an image into a candidate expression."""
        ...


class ImagePreprocessor(Protocol):
    """Protocol for image resize/compress collaborators."""

    def process_image_for_ocr(self, image: str, options: dict[str, Any]) -> PreprocessedImage:
        ...


class ImageValidator(Protocol):
    """Protocol for image validation collaborators."""

    def validate_image(self, image: str) -> ImageValidation:
        ...
