"""Recovery strategy mapping based on error kind."""
from dataclasses import dataclass, field, replace

from ..exceptions import ClassifiedError
from ..types import CameraErrorKind, ProcessingErrorKind


@dataclass
class RecoveryStrategy:
    """How the caller should react to a classified error."""

    can_retry: bool
    auto_retry: bool = False
    max_retries: int = 0
    retry_delay: float = 0.0  # seconds
    fallback_options: list[str] = field(default_factory=list)
    user_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "can_retry": self.can_retry,
            "auto_retry": self.auto_retry,
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "fallback_options": list(self.fallback_options),
            "user_actions": list(self.user_actions),
        }


@dataclass(frozen=True)
class StrategyConfig:
    """Tuning for one error kind; ``can_retry`` comes from the error itself."""

    auto_retry: bool = False
    max_retries: int = 1
    retry_delay: float = 1.0
    fallback_options: tuple[str, ...] = ()
    user_actions: tuple[str, ...] = ()


class StrategyMapper:
    """Maps error kinds to recovery strategies."""

    DEFAULT_STRATEGIES: dict[ProcessingErrorKind | CameraErrorKind, StrategyConfig] = {
        ProcessingErrorKind.LLM_SERVICE_ERROR: StrategyConfig(
            auto_retry=True,
            max_retries=3,
            retry_delay=2.0,
            fallback_options=("manual-input",),
        ),
        ProcessingErrorKind.TIMEOUT: StrategyConfig(
            auto_retry=True,
            max_retries=2,
            retry_delay=5.0,
        ),
        # one retry after a long fixed delay
        ProcessingErrorKind.RATE_LIMIT_EXCEEDED: StrategyConfig(
            max_retries=1,
            retry_delay=60.0,
        ),
        ProcessingErrorKind.INSUFFICIENT_CONFIDENCE: StrategyConfig(
            max_retries=0,
            retry_delay=0.0,
            fallback_options=("manual-edit", "recapture"),
            user_actions=("improve-lighting", "better-angle"),
        ),
        CameraErrorKind.CAPTURE_FAILED: StrategyConfig(
            auto_retry=True,
            max_retries=2,
            retry_delay=1.0,
            fallback_options=("manual-input", "file-upload"),
        ),
        CameraErrorKind.PERMISSION_DENIED: StrategyConfig(
            max_retries=0,
            retry_delay=0.0,
            fallback_options=("manual-input",),
            user_actions=("grant-permission", "open-settings"),
        ),
        CameraErrorKind.HARDWARE_UNAVAILABLE: StrategyConfig(
            max_retries=0,
            retry_delay=0.0,
            fallback_options=("manual-input", "file-upload"),
        ),
    }

    PROCESSING_DEFAULT = StrategyConfig(max_retries=1, retry_delay=1.0)
    CAMERA_DEFAULT = StrategyConfig(max_retries=1, retry_delay=2.0)

    def __init__(
        self,
        custom_strategies: dict[ProcessingErrorKind | CameraErrorKind, StrategyConfig] | None = None,
    ):
        self.strategies = self.DEFAULT_STRATEGIES.copy()
        if custom_strategies:
            self.strategies.update(custom_strategies)

    def get_strategy_config(self, kind: ProcessingErrorKind | CameraErrorKind) -> StrategyConfig:
        if kind in self.strategies:
            return self.strategies[kind]
        if isinstance(kind, ProcessingErrorKind):
            return self.PROCESSING_DEFAULT
        return self.CAMERA_DEFAULT

    def create_strategy(self, error: ClassifiedError) -> RecoveryStrategy:
        config = self.get_strategy_config(error.kind)
        return RecoveryStrategy(
            can_retry=error.recoverable,
            auto_retry=config.auto_retry,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            fallback_options=list(config.fallback_options),
            user_actions=list(config.user_actions),
        )


def adjust_for_success_rate(strategy: RecoveryStrategy, success_rate: float) -> RecoveryStrategy:
    """Tune a strategy with the observed recovery success rate for its error key.

    Below 0.3 retries drop by one (never below one) and auto-retry is
    disabled; above 0.8 one extra retry is allowed (capped at five).
    """
    tuned = replace(
        strategy,
        fallback_options=list(strategy.fallback_options),
        user_actions=list(strategy.user_actions),
    )
    if success_rate < 0.3:
        tuned.max_retries = max(1, tuned.max_retries - 1)
        tuned.auto_retry = False
    elif success_rate > 0.8:
        tuned.max_retries = min(5, tuned.max_retries + 1)
    return tuned
