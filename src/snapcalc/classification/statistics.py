"""Rolling error history and recovery success rates."""
import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any

from ..exceptions import ClassifiedError, ProcessingError
from .categories import error_key
from .strategies import RecoveryStrategy, StrategyMapper, adjust_for_success_rate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorOccurrence:
    """One recorded error occurrence."""

    kind: str
    stage: str | None
    message: str
    attempt_number: int
    timestamp: float


class RecoveryStatistics:
    """Process-wide error history and smoothed recovery success rates.

    Owned by the recognition service and shared by every pipeline it
    creates. All access goes through one lock, so pipelines running on
    different threads or tasks can record concurrently.
    """

    HISTORY_LIMIT = 100
    INITIAL_SUCCESS_RATE = 0.5
    RATE_STEP = 0.1

    def __init__(self, strategy_mapper: StrategyMapper | None = None, history_limit: int = HISTORY_LIMIT):
        self.strategy_mapper = strategy_mapper or StrategyMapper()
        self.history_limit = history_limit
        self._history: dict[str, deque[ErrorOccurrence]] = {}
        self._success_rates: dict[str, float] = {}
        self._lock = threading.Lock()

    def record_error(self, error: ClassifiedError, attempt_number: int = 1) -> None:
        """Record an error occurrence for pattern analysis."""
        key = error_key(error)
        occurrence = ErrorOccurrence(
            kind=error.kind.value,
            stage=error.stage.value if isinstance(error, ProcessingError) else None,
            message=error.message,
            attempt_number=attempt_number,
            timestamp=error.timestamp,
        )
        with self._lock:
            history = self._history.get(key)
            if history is None:
                history = deque(maxlen=self.history_limit)
                self._history[key] = history
            history.append(occurrence)

    def record_recovery_success(self, error: ClassifiedError) -> float:
        return self._adjust_rate(error_key(error), self.RATE_STEP)

    def record_recovery_failure(self, error: ClassifiedError) -> float:
        return self._adjust_rate(error_key(error), -self.RATE_STEP)

    def _adjust_rate(self, key: str, delta: float) -> float:
        with self._lock:
            current = self._success_rates.get(key, self.INITIAL_SUCCESS_RATE)
            updated = round(min(max(current + delta, 0.0), 1.0), 10)
            self._success_rates[key] = updated
        logger.debug(f"Recovery success rate for {key}: {current:.2f} -> {updated:.2f}")
        return updated

    def get_success_rate(self, error: ClassifiedError | str) -> float:
        key = error if isinstance(error, str) else error_key(error)
        with self._lock:
            return self._success_rates.get(key, self.INITIAL_SUCCESS_RATE)

    def get_history(self, error: ClassifiedError | str) -> list[ErrorOccurrence]:
        key = error if isinstance(error, str) else error_key(error)
        with self._lock:
            return list(self._history.get(key, ()))

    def get_optimized_recovery_strategy(self, error: ClassifiedError) -> RecoveryStrategy:
        """Get the kind's recovery strategy tuned by historical success rate."""
        base = self.strategy_mapper.create_strategy(error)
        return adjust_for_success_rate(base, self.get_success_rate(error))

    def get_statistics(self) -> dict[str, Any]:
        """Get error statistics for monitoring and debugging."""
        with self._lock:
            errors_by_type = {key: len(history) for key, history in self._history.items()}
            rates = list(self._success_rates.values())

        most_common = sorted(errors_by_type.items(), key=lambda item: item[1], reverse=True)[:5]
        return {
            "total_errors": sum(errors_by_type.values()),
            "errors_by_type": errors_by_type,
            "average_recovery_rate": sum(rates) / len(rates) if rates else 0.0,
            "most_common_errors": [{"type": key, "count": count} for key, count in most_common],
        }

    def snapshot(self) -> dict[str, Any]:
        """Serializable copy of the current state."""
        with self._lock:
            return {
                "history": {
                    key: [asdict(occurrence) for occurrence in history]
                    for key, history in self._history.items()
                },
                "success_rates": dict(self._success_rates),
                "taken_at": time.time(),
            }

    def restore(self, snapshot: dict[str, Any] | None) -> None:
        """Replace the current state with a snapshot produced by ``snapshot``."""
        if not snapshot:
            return
        history = {
            key: deque((ErrorOccurrence(**entry) for entry in entries), maxlen=self.history_limit)
            for key, entries in snapshot.get("history", {}).items()
        }
        rates = {
            key: min(max(float(rate), 0.0), 1.0)
            for key, rate in snapshot.get("success_rates", {}).items()
        }
        with self._lock:
            self._history = history
            self._success_rates = rates
        logger.info(f"Restored recovery statistics for {len(history)} error keys")

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
            self._success_rates.clear()
