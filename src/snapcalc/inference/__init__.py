"""Inference service client and default image collaborators."""
from .gemini import MATH_PROMPT, GeminiVisionClient, UsageStats
from .images import DataURLImageValidator, PassthroughPreprocessor, estimate_size, parse_data_url

__all__ = [
    'MATH_PROMPT',
    'GeminiVisionClient',
    'UsageStats',
    'DataURLImageValidator',
    'PassthroughPreprocessor',
    'estimate_size',
    'parse_data_url',
]
