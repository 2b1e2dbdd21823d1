"""
Configuration for the recognition pipeline.

All numeric defaults live here. Values can be injected directly or read
from ``SNAPCALC_*`` / ``GEMINI_*`` environment variables.
"""
import logging
import os
from dataclasses import dataclass, field, replace
from enum import Enum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry behaviour for one class of network operation."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    retryable_status_codes: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})
    retryable_error_types: tuple[str, ...] = ("timeout", "network", "rate limit", "server error")


# Presets per operation class
RETRY_PRESETS: dict[str, RetryConfig] = {
    "inference": RetryConfig(
        max_attempts=3,
        base_delay=1.0,
        max_delay=30.0,
        backoff_multiplier=2.0,
    ),
    "upload": RetryConfig(
        max_attempts=2,
        base_delay=0.5,
        max_delay=10.0,
        backoff_multiplier=2.0,
        retryable_status_codes=frozenset({408, 500, 502, 503, 504}),
        retryable_error_types=("timeout", "network", "upload failed"),
    ),
    "generic": RetryConfig(
        max_attempts=3,
        base_delay=2.0,
        max_delay=20.0,
        backoff_multiplier=1.5,
        retryable_status_codes=frozenset({429, 500, 502, 503, 504}),
        retryable_error_types=("rate limit", "server error", "timeout"),
    ),
}


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    recovery_timeout: float = 60.0


class ModerateConfidence(Enum):
    """What to do with results between the minimum and warning thresholds."""
    LOG = "log"  # accept, log a warning
    SURFACE = "surface"  # accept, log and attach the warning to the result


@dataclass(frozen=True)
class ConfidencePolicy:
    minimum: float = 0.3
    warning: float = 0.6
    moderate: ModerateConfidence = ModerateConfidence.LOG


@dataclass(frozen=True)
class ConfigValidation:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration injected into the service and pipelines."""
    retry: RetryConfig = field(default_factory=lambda: RETRY_PRESETS["inference"])
    upload_retry: RetryConfig = field(default_factory=lambda: RETRY_PRESETS["upload"])
    generic_retry: RetryConfig = field(default_factory=lambda: RETRY_PRESETS["generic"])
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    confidence: ConfidencePolicy = field(default_factory=ConfidencePolicy)
    inference_timeout: float = 30.0
    auto_retry_attempts: int = 3
    max_image_bytes: int = 10 * 1024 * 1024

    def retry_config_for(self, operation: str) -> RetryConfig:
        """Get the retry config for an operation class, falling back to generic."""
        return {
            "inference": self.retry,
            "upload": self.upload_retry,
            "generic": self.generic_retry,
        }.get(operation, self.generic_retry)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "PipelineConfig":
        """Build a config from environment variables, keeping defaults for unset keys."""
        env = os.environ if environ is None else environ
        defaults = cls()

        retry = replace(
            defaults.retry,
            max_attempts=_env_int(env, "SNAPCALC_RETRY_ATTEMPTS", defaults.retry.max_attempts),
            base_delay=_env_float(env, "SNAPCALC_RETRY_DELAY", defaults.retry.base_delay),
            max_delay=_env_float(env, "SNAPCALC_RETRY_MAX_DELAY", defaults.retry.max_delay),
        )
        breaker = CircuitBreakerConfig(
            failure_threshold=_env_int(
                env, "SNAPCALC_BREAKER_THRESHOLD", defaults.circuit_breaker.failure_threshold
            ),
            recovery_timeout=_env_float(
                env, "SNAPCALC_BREAKER_TIMEOUT", defaults.circuit_breaker.recovery_timeout
            ),
        )
        moderate_name = env.get("SNAPCALC_MODERATE_CONFIDENCE", defaults.confidence.moderate.value)
        try:
            moderate = ModerateConfidence(moderate_name.lower())
        except ValueError:
            logger.warning(f"Unknown SNAPCALC_MODERATE_CONFIDENCE value {moderate_name!r}, using 'log'")
            moderate = ModerateConfidence.LOG
        confidence = ConfidencePolicy(
            minimum=_env_float(env, "SNAPCALC_MIN_CONFIDENCE", defaults.confidence.minimum),
            warning=_env_float(env, "SNAPCALC_WARN_CONFIDENCE", defaults.confidence.warning),
            moderate=moderate,
        )

        return replace(
            defaults,
            retry=retry,
            circuit_breaker=breaker,
            confidence=confidence,
            inference_timeout=_env_float(env, "SNAPCALC_INFERENCE_TIMEOUT", defaults.inference_timeout),
            auto_retry_attempts=_env_int(env, "SNAPCALC_AUTO_RETRY_ATTEMPTS", defaults.auto_retry_attempts),
            max_image_bytes=_env_int(env, "SNAPCALC_MAX_IMAGE_BYTES", defaults.max_image_bytes),
        )

    def validate(self) -> ConfigValidation:
        """Check the configuration for impossible or risky values."""
        errors: list[str] = []
        warnings: list[str] = []

        for name, retry in (("retry", self.retry), ("upload_retry", self.upload_retry),
                            ("generic_retry", self.generic_retry)):
            if retry.max_attempts < 1:
                errors.append(f"{name}.max_attempts must be at least 1")
            if retry.base_delay < 0 or retry.max_delay < 0:
                errors.append(f"{name} delays cannot be negative")
            if retry.max_delay < retry.base_delay:
                errors.append(f"{name}.max_delay must not be smaller than base_delay")
            if retry.backoff_multiplier < 1:
                errors.append(f"{name}.backoff_multiplier must be at least 1")
            if 0 < retry.base_delay < 0.1:
                warnings.append(f"Very short {name} delay may cause rate limiting")

        if self.circuit_breaker.failure_threshold < 1:
            errors.append("circuit_breaker.failure_threshold must be at least 1")
        if self.circuit_breaker.recovery_timeout <= 0:
            errors.append("circuit_breaker.recovery_timeout must be positive")

        policy = self.confidence
        if not (0.0 <= policy.minimum <= 1.0 and 0.0 <= policy.warning <= 1.0):
            errors.append("confidence thresholds must be within 0..1")
        elif policy.minimum > policy.warning:
            errors.append("confidence.minimum must not exceed confidence.warning")

        if self.inference_timeout <= 0:
            errors.append("inference_timeout must be positive")
        elif self.inference_timeout < 5:
            warnings.append("Inference timeout below 5s may cause premature failures")
        if self.auto_retry_attempts < 0:
            errors.append("auto_retry_attempts cannot be negative")
        if self.max_image_bytes <= 0:
            errors.append("max_image_bytes must be positive")

        return ConfigValidation(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))


@dataclass(frozen=True)
class GeminiConfig:
    """Connection settings for the Gemini vision client."""
    api_key: str = ""
    model: str = "gemini-1.5-flash"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta/models"
    temperature: float = 0.1
    max_output_tokens: int = 100
    timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "GeminiConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_key=env.get("GEMINI_API_KEY", ""),
            model=env.get("GEMINI_MODEL", defaults.model),
            base_url=env.get("GEMINI_BASE_URL", defaults.base_url),
            temperature=_env_float(env, "GEMINI_TEMPERATURE", defaults.temperature),
            max_output_tokens=_env_int(env, "GEMINI_MAX_TOKENS", defaults.max_output_tokens),
            timeout=_env_float(env, "GEMINI_TIMEOUT", defaults.timeout),
        )

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _env_int(env, key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer value {raw!r} for {key}")
        return default


def _env_float(env, key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value {raw!r} for {key}")
        return default
