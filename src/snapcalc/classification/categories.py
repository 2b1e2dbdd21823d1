"""Per-kind defaults and matching primitives for error classification."""
from dataclasses import dataclass, field

from ..exceptions import ClassifiedError, ProcessingError
from ..types import CameraErrorKind, ProcessingErrorKind


@dataclass(frozen=True)
class KindProfile:
    """Fixed defaults attached to every error of one kind."""

    recoverable: bool
    retryable: bool
    suggested_action: str
    user_message: str
    troubleshooting: tuple[str, ...] = ()


PROCESSING_PROFILES: dict[ProcessingErrorKind, KindProfile] = {
    ProcessingErrorKind.IMAGE_INVALID: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Capture a new image with better quality",
        user_message="The captured image cannot be processed",
        troubleshooting=(
            "Ensure image contains clear mathematical expressions",
            "Try capturing with better lighting",
            "Avoid blurry or low-quality images",
        ),
    ),
    ProcessingErrorKind.LLM_SERVICE_ERROR: KindProfile(
        recoverable=True,
        retryable=True,
        suggested_action="Check internet connection and try again",
        user_message="Image analysis service is temporarily unavailable",
        troubleshooting=(
            "Check your internet connection",
            "Verify API key configuration",
            "Try again in a few minutes",
        ),
    ),
    ProcessingErrorKind.PARSING_FAILED: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Capture image with clearer mathematical expressions",
        user_message="Could not extract mathematical expression from image",
        troubleshooting=(
            "Use standard mathematical notation",
            "Ensure expressions are clearly written",
            "Avoid complex or unusual mathematical symbols",
        ),
    ),
    ProcessingErrorKind.VALIDATION_FAILED: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Ensure image contains valid mathematical notation",
        user_message="The detected expression is not valid mathematics",
    ),
    ProcessingErrorKind.TIMEOUT: KindProfile(
        recoverable=True,
        retryable=True,
        suggested_action="Try again with a smaller or clearer image",
        user_message="Image processing took too long and was cancelled",
    ),
    ProcessingErrorKind.RATE_LIMIT_EXCEEDED: KindProfile(
        recoverable=False,
        retryable=False,
        suggested_action="Wait a few minutes before trying again",
        user_message="Too many requests - please wait before trying again",
    ),
    ProcessingErrorKind.INSUFFICIENT_CONFIDENCE: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Capture a clearer image with better lighting",
        user_message="Could not clearly detect mathematical expressions",
    ),
    ProcessingErrorKind.PROCESSING_FAILED: KindProfile(
        recoverable=False,
        retryable=True,
        suggested_action="Try the operation again",
        user_message="Image processing failed unexpectedly",
    ),
}

CAMERA_PROFILES: dict[CameraErrorKind, KindProfile] = {
    CameraErrorKind.PERMISSION_DENIED: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Grant camera permission in system or browser settings",
        user_message="Camera access is required to capture mathematical expressions",
        troubleshooting=(
            "Restart the application after granting permissions",
            "Check if other applications are using the camera",
        ),
    ),
    CameraErrorKind.HARDWARE_UNAVAILABLE: KindProfile(
        recoverable=False,
        retryable=False,
        suggested_action="Check camera hardware connection and try again",
        user_message="Camera is not available or not working properly",
        troubleshooting=(
            "Ensure camera is properly connected",
            "Close other applications that might be using the camera",
            "Try restarting your device",
        ),
    ),
    CameraErrorKind.PLATFORM_UNSUPPORTED: KindProfile(
        recoverable=False,
        retryable=False,
        suggested_action="Use a supported browser or platform",
        user_message="Camera access is not supported on this platform",
    ),
    CameraErrorKind.CAPTURE_FAILED: KindProfile(
        recoverable=True,
        retryable=True,
        suggested_action="Try capturing the image again",
        user_message="Failed to capture image from camera",
        troubleshooting=(
            "Ensure adequate lighting",
            "Hold the device steady while capturing",
            "Try capturing from a different angle",
        ),
    ),
    CameraErrorKind.PROCESSING_FAILED: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Try again with better lighting or image quality",
        user_message="Failed to process the captured image",
    ),
    CameraErrorKind.NETWORK_ERROR: KindProfile(
        recoverable=True,
        retryable=True,
        suggested_action="Check internet connection and try again",
        user_message="Network connection required for image processing",
    ),
    CameraErrorKind.CONFIGURATION_ERROR: KindProfile(
        recoverable=True,
        retryable=False,
        suggested_action="Check application settings and configuration",
        user_message="Camera configuration needs to be updated",
    ),
}


def get_profile(kind: ProcessingErrorKind | CameraErrorKind) -> KindProfile:
    if isinstance(kind, ProcessingErrorKind):
        return PROCESSING_PROFILES[kind]
    return CAMERA_PROFILES[kind]


def error_key(error: ClassifiedError) -> str:
    """Statistics key for an error: ``processing-<kind>-<stage>`` or ``camera-<kind>``."""
    if isinstance(error, ProcessingError):
        return f"processing-{error.kind.value}-{error.stage.value}"
    return f"camera-{error.kind.value}"


@dataclass
class ErrorPattern:
    """Text and status cues that map a raw failure to an error kind."""

    kind: ProcessingErrorKind | CameraErrorKind
    indicators: list[str]  # any one must appear in the message
    message: str
    suggested_action: str
    status_codes: list[int] = field(default_factory=list)
    exception_types: list[type] = field(default_factory=list)
    required: list[str] = field(default_factory=list)  # all must also appear
    retryable: bool | None = None  # overrides the kind default

    def matches(self, error: BaseException) -> float:
        """Calculate match score for error (0.0 to 1.0)."""
        error_str = str(error).lower()

        if self.required and not all(word in error_str for word in self.required):
            return 0.0

        score = 0.0
        factors = 0

        if self.exception_types:
            if isinstance(error, tuple(self.exception_types)):
                score += 1.0
            factors += 1

        if self.indicators:
            if any(indicator in error_str for indicator in self.indicators):
                score += 1.0
            factors += 1

        status = getattr(error, "status", None)
        if self.status_codes and status is not None:
            if status in self.status_codes:
                score += 1.0
            factors += 1

        return score / factors if factors > 0 else 0.0
