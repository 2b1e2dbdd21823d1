"""Predefined error patterns for classification."""
import asyncio

from ..exceptions import InferenceTimeoutError
from ..types import CameraErrorKind, ProcessingErrorKind
from .categories import ErrorPattern

# Opaque inference-service failures, checked in order
INFERENCE_PATTERNS: list[ErrorPattern] = [
    ErrorPattern(
        kind=ProcessingErrorKind.LLM_SERVICE_ERROR,
        indicators=["api key", "authentication", "authorization", "unauthorized", "permission denied"],
        status_codes=[401, 403],
        retryable=False,
        message="LLM service authentication failed. Please check API key configuration.",
        suggested_action="Verify API key in application settings and ensure it has proper permissions",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.RATE_LIMIT_EXCEEDED,
        indicators=["rate limit", "quota", "too many requests"],
        status_codes=[429],
        message="LLM service rate limit exceeded. Please wait before trying again.",
        suggested_action="Wait a few minutes before attempting another OCR operation",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.LLM_SERVICE_ERROR,
        indicators=["timeout", "timed out", "network", "connection"],
        exception_types=[InferenceTimeoutError, asyncio.TimeoutError, ConnectionError],
        message="Network timeout while processing image. Please check your internet connection.",
        suggested_action="Check internet connection and try again",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.IMAGE_INVALID,
        indicators=["invalid"],
        required=["image"],
        message="Image format not supported by LLM service.",
        suggested_action="Capture a new image in JPEG format with better quality",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.INSUFFICIENT_CONFIDENCE,
        indicators=["no_math_found", "no mathematical"],
        message="No mathematical expressions detected in the image.",
        suggested_action="Ensure the image contains clear mathematical expressions and try again",
    ),
]

# Failures that outlived every retry attempt
EXHAUSTION_PATTERNS: list[ErrorPattern] = [
    ErrorPattern(
        kind=ProcessingErrorKind.TIMEOUT,
        indicators=["timeout", "timed out"],
        exception_types=[InferenceTimeoutError, asyncio.TimeoutError],
        message="Operation timed out - the service may be slow or unavailable",
        suggested_action="Try again with a smaller image or check your internet connection",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.RATE_LIMIT_EXCEEDED,
        indicators=["rate limit", "quota", "too many requests"],
        status_codes=[429],
        message="Service rate limit exceeded - too many requests",
        suggested_action="Wait a few minutes before trying again",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.LLM_SERVICE_ERROR,
        indicators=["network", "connection"],
        exception_types=[ConnectionError],
        message="Network connection failed - unable to reach the service",
        suggested_action="Check your internet connection and try again",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.LLM_SERVICE_ERROR,
        indicators=["server error", "service unavailable", "bad gateway", "internal error"],
        status_codes=[500, 502, 503, 504],
        message="Service is temporarily unavailable",
        suggested_action="The service may be experiencing issues - try again in a few minutes",
    ),
]

# Image validation and preprocessing failures; all map to image-invalid
IMAGE_PATTERNS: list[ErrorPattern] = [
    ErrorPattern(
        kind=ProcessingErrorKind.IMAGE_INVALID,
        indicators=["size", "large"],
        message="Image file is too large for processing.",
        suggested_action="Capture image at lower resolution or enable compression in settings",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.IMAGE_INVALID,
        indicators=["format", "invalid"],
        message="Image format is not supported.",
        suggested_action="Ensure camera is capturing in JPEG format",
    ),
    ErrorPattern(
        kind=ProcessingErrorKind.IMAGE_INVALID,
        indicators=["corrupt", "damaged"],
        message="Image data appears to be corrupted.",
        suggested_action="Try capturing a new image",
    ),
]

CAMERA_PATTERNS: list[ErrorPattern] = [
    ErrorPattern(
        kind=CameraErrorKind.PERMISSION_DENIED,
        indicators=["permission", "denied", "not allowed"],
        exception_types=[PermissionError],
        message="Camera access denied by system. Please check system camera permissions.",
        suggested_action="Check system settings and grant camera access to this application",
    ),
    ErrorPattern(
        kind=CameraErrorKind.PLATFORM_UNSUPPORTED,
        indicators=["not supported", "unsupported"],
        exception_types=[NotImplementedError],
        message="Camera access is not supported on this platform.",
        suggested_action="Use a supported browser or platform",
    ),
    ErrorPattern(
        kind=CameraErrorKind.HARDWARE_UNAVAILABLE,
        indicators=["no camera", "not found", "device", "hardware", "in use"],
        exception_types=[FileNotFoundError],
        message="No usable camera device was found.",
        suggested_action="Check camera hardware connection and try again",
    ),
    ErrorPattern(
        kind=CameraErrorKind.NETWORK_ERROR,
        indicators=["network", "connection", "offline"],
        exception_types=[ConnectionError],
        message="Network connection required for image processing.",
        suggested_action="Check internet connection and try again",
    ),
]

# Causes the retry executor never retries
NON_RETRYABLE_INDICATORS: tuple[str, ...] = (
    "api key",
    "authentication",
    "authorization",
    "invalid request",
    "malformed",
    "no_math_found",
)

RETRYABLE_INDICATORS: tuple[str, ...] = (
    "timeout",
    "network error",
    "connection refused",
    "connection reset",
    "socket hang up",
    "econnreset",
    "enotfound",
    "etimedout",
    "rate limit",
    "quota exceeded",
    "service unavailable",
    "internal server error",
    "server error",
    "bad gateway",
    "gateway timeout",
    "temporary",
)
