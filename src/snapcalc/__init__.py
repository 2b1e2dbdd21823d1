"""
Recognize photographed arithmetic expressions through a vision-language service.
"""
from .config import ConfidencePolicy, GeminiConfig, ModerateConfidence, PipelineConfig, RetryConfig
from .exceptions import (
    CameraError,
    CircuitBreakerOpenError,
    ClassifiedError,
    InferenceResponseError,
    InferenceServiceError,
    InferenceTimeoutError,
    ProcessingError,
    SnapCalcError,
)
from .expression import MathExpressionParser
from .fallback import FallbackOption, FallbackResolver
from .pipeline import RecognitionPipeline
from .service import RecognitionService
from .types import (
    CameraErrorKind,
    ImageSource,
    InferenceResponse,
    ProcessingErrorKind,
    ProcessingResult,
    ProcessingStage,
    ProcessingState,
)

__version__ = "0.1.0"

__all__ = [
    # Service and pipeline
    'RecognitionService',
    'RecognitionPipeline',
    'MathExpressionParser',
    'FallbackResolver',
    'FallbackOption',

    # Configuration
    'PipelineConfig',
    'RetryConfig',
    'ConfidencePolicy',
    'ModerateConfidence',
    'GeminiConfig',

    # Types
    'CameraErrorKind',
    'ImageSource',
    'InferenceResponse',
    'ProcessingErrorKind',
    'ProcessingResult',
    'ProcessingStage',
    'ProcessingState',

    # Exceptions
    'SnapCalcError',
    'ClassifiedError',
    'ProcessingError',
    'CameraError',
    'InferenceResponseError',
    'InferenceServiceError',
    'InferenceTimeoutError',
    'CircuitBreakerOpenError',
]
