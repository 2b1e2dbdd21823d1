"""Fallback paths offered when recognition cannot recover on its own."""
from .resolver import (
    DEFAULT_STRATEGY,
    FALLBACK_STRATEGIES,
    FallbackOption,
    FallbackResolver,
    FallbackResult,
    FallbackStrategy,
    OptionInstructions,
    RuntimeCapabilities,
)

__all__ = [
    'DEFAULT_STRATEGY',
    'FALLBACK_STRATEGIES',
    'FallbackOption',
    'FallbackResolver',
    'FallbackResult',
    'FallbackStrategy',
    'OptionInstructions',
    'RuntimeCapabilities',
]
