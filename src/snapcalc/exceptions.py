"""
Exceptions for the recognition pipeline.
"""
import time
from typing import Any

from .types import CameraErrorKind, ProcessingErrorKind, ProcessingStage


class SnapCalcError(Exception):
    """Base exception for snapcalc."""


class ClassifiedError(SnapCalcError):
    """Base of the classified error union.

    Instances are produced by the error classifier and frozen once
    constructed; assigning to an attribute raises AttributeError.
    """

    def __init__(
        self,
        kind: CameraErrorKind | ProcessingErrorKind,
        message: str,
        recoverable: bool,
        retryable: bool,
        suggested_action: str,
        original_cause: BaseException | None = None,
        operation: str | None = None,
        attempts: int | None = None,
        retry_count: int = 0,
        timestamp: float | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.recoverable = recoverable
        self.retryable = retryable
        self.suggested_action = suggested_action
        self.original_cause = original_cause
        self.operation = operation
        self.attempts = attempts
        self.retry_count = retry_count
        self.timestamp = timestamp if timestamp is not None else time.time()
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False) and not name.startswith("__"):
            raise AttributeError(f"{type(self).__name__} is immutable; cannot set {name!r}")
        super().__setattr__(name, value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "retryable": self.retryable,
            "suggested_action": self.suggested_action,
            "original_cause": str(self.original_cause) if self.original_cause else None,
            "operation": self.operation,
            "attempts": self.attempts,
            "retry_count": self.retry_count,
            "timestamp": self.timestamp,
        }


class ProcessingError(ClassifiedError):
    """A failure of the recognition pipeline, tagged with the stage it happened in."""

    def __init__(self, kind: ProcessingErrorKind, message: str, stage: ProcessingStage, **kwargs: Any):
        self.stage = stage
        super().__init__(kind, message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["stage"] = self.stage.value
        return data

    def __repr__(self) -> str:
        return f"ProcessingError(kind={self.kind.value!r}, stage={self.stage.value!r}, message={self.message!r})"


class CameraError(ClassifiedError):
    """A failure on the capture side of the application."""

    def __repr__(self) -> str:
        return f"CameraError(kind={self.kind.value!r}, message={self.message!r})"


class InferenceServiceError(SnapCalcError):
    """Raw failure reported by the inference transport."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InferenceResponseError(InferenceServiceError):
    """The inference service answered but flagged its response as failed."""


class InferenceTimeoutError(InferenceServiceError):
    """Raised when a single inference call exceeds its time budget."""

    def __init__(self, timeout: float):
        super().__init__(f"Inference request timeout after {timeout}s", status=408)
        self.timeout = timeout


class CircuitBreakerOpenError(SnapCalcError):
    """Raised when circuit breaker is open."""

    def __init__(self, message: str, timeout_remaining: float):
        super().__init__(message)
        self.timeout_remaining = timeout_remaining
