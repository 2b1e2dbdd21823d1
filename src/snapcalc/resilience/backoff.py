"""
Backoff strategies for the retry executor.
"""
import random
from abc import ABC, abstractmethod

from ..config import RetryConfig

JITTER_RATIO = 0.3


class BaseStrategy(ABC):
    """Base class for backoff strategies."""

    def __init__(self, max_delay: float = 30.0):
        self.max_delay = max_delay

    @abstractmethod
    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay before the next attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)

        Returns:
            Delay in seconds
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy name for logging."""


class ExponentialBackoffStrategy(BaseStrategy):
    """
    Exponential backoff strategy with optional upward jitter.

    delay = min(base_delay * multiplier ** (attempt - 1) * (1 + U[0, jitter_ratio]), max_delay)

    Jitter only ever lengthens a delay, so with ``multiplier >= 1 + jitter_ratio``
    the delay sequence is non-decreasing.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        max_delay: float = 30.0,
        jitter: bool = True,
        jitter_ratio: float = JITTER_RATIO,
        rng: random.Random | None = None,
    ):
        super().__init__(max_delay)
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: RetryConfig, rng: random.Random | None = None) -> "ExponentialBackoffStrategy":
        return cls(
            base_delay=config.base_delay,
            backoff_multiplier=config.backoff_multiplier,
            max_delay=config.max_delay,
            jitter=config.jitter,
            rng=rng,
        )

    def calculate_delay(self, attempt: int) -> float:
        delay = self.base_delay * (self.backoff_multiplier ** max(attempt - 1, 0))

        if self.jitter and delay > 0:
            delay *= 1 + self.rng.uniform(0, self.jitter_ratio)

        return min(delay, self.max_delay)

    @property
    def name(self) -> str:
        return f"ExponentialBackoff(base={self.base_delay}, multiplier={self.backoff_multiplier})"
