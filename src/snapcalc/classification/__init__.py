"""Error classification system for the recognition pipeline."""
from .categories import (
    CAMERA_PROFILES,
    PROCESSING_PROFILES,
    ErrorPattern,
    KindProfile,
    error_key,
    get_profile,
)
from .classifier import ErrorClassifier
from .statistics import ErrorOccurrence, RecoveryStatistics
from .strategies import RecoveryStrategy, StrategyConfig, StrategyMapper, adjust_for_success_rate

__all__ = [
    "ErrorClassifier",
    "ErrorPattern",
    "KindProfile",
    "PROCESSING_PROFILES",
    "CAMERA_PROFILES",
    "get_profile",
    "error_key",
    "RecoveryStatistics",
    "ErrorOccurrence",
    "RecoveryStrategy",
    "StrategyConfig",
    "StrategyMapper",
    "adjust_for_success_rate",
]
