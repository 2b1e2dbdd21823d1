"""Expression validation, normalization and evaluation."""
from .evaluator import SafeEvaluator
from .parser import (
    NO_EXPRESSION_SENTINEL,
    MathExpressionParser,
    format_for_display,
    looks_like_math,
    tokenize,
)

__all__ = [
    "MathExpressionParser",
    "SafeEvaluator",
    "NO_EXPRESSION_SENTINEL",
    "format_for_display",
    "looks_like_math",
    "tokenize",
]
