"""Retry and circuit breaker primitives guarding network dependencies."""
from .backoff import JITTER_RATIO, BaseStrategy, ExponentialBackoffStrategy
from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry, CircuitState, CircuitStatus
from .retry import RetryExecutor, execute_with_timeout

__all__ = [
    'BaseStrategy',
    'ExponentialBackoffStrategy',
    'JITTER_RATIO',
    'CircuitBreaker',
    'CircuitBreakerRegistry',
    'CircuitState',
    'CircuitStatus',
    'RetryExecutor',
    'execute_with_timeout',
]
