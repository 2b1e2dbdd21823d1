"""Circuit breaker guarding the inference dependency."""
import inspect
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..config import CircuitBreakerConfig
from ..exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)


class CircuitStatus(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class CircuitState:
    """Point-in-time view of a breaker."""

    state: CircuitStatus
    failure_count: int
    last_failure_time: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
        }


class CircuitBreaker:
    """Closed/open/half-open breaker for one guarded dependency.

    Reaching ``failure_threshold`` failures opens the circuit. While open,
    calls fail fast with CircuitBreakerOpenError and the wrapped operation
    is never invoked. Once ``recovery_timeout`` has elapsed a single trial
    call is let through: success closes the circuit, failure reopens it.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitStatus.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitStatus:
        with self._lock:
            return self._state

    def can_execute(self) -> tuple[bool, float | None]:
        """Check if execution is allowed; claims the half-open trial when granted."""
        with self._lock:
            if self._state == CircuitStatus.CLOSED:
                return True, None

            if self._state == CircuitStatus.OPEN:
                elapsed = self._clock() - (self._last_failure_time or 0.0)
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitStatus.HALF_OPEN
                    self._trial_in_flight = True
                    logger.info(f"Circuit '{self.name}' half-open, allowing one trial call")
                    return True, None
                return False, self.recovery_timeout - elapsed

            # half-open: only the claimed trial may run
            if self._trial_in_flight:
                return False, 0.0
            self._trial_in_flight = True
            return True, None

    def record_success(self) -> None:
        with self._lock:
            if self._state != CircuitStatus.CLOSED:
                logger.info(f"Circuit '{self.name}' closed after successful call")
            self._failure_count = 0
            self._state = CircuitStatus.CLOSED
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()
            self._trial_in_flight = False

            if self._state == CircuitStatus.HALF_OPEN:
                self._state = CircuitStatus.OPEN
                logger.warning(f"Circuit '{self.name}' trial call failed, reopening")
            elif self._state == CircuitStatus.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitStatus.OPEN
                logger.warning(
                    f"Circuit '{self.name}' opened after {self._failure_count} failures; "
                    f"failing fast for {self.recovery_timeout}s"
                )

    def _release_trial(self) -> None:
        with self._lock:
            self._trial_in_flight = False

    async def call(self, operation: Callable[[], Any]) -> Any:
        """Run ``operation`` under breaker protection.

        Raises:
            CircuitBreakerOpenError: if the circuit does not admit the call

        """
        allowed, remaining = self.can_execute()
        if not allowed:
            raise CircuitBreakerOpenError(
                f"Circuit breaker '{self.name}' is open - service is temporarily unavailable",
                timeout_remaining=remaining or 0.0,
            )

        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self.record_failure()
            raise
        except BaseException:
            # cancelled mid-call: neither a success nor a failure
            self._release_trial()
            raise

        self.record_success()
        return result

    def get_state(self) -> CircuitState:
        with self._lock:
            return CircuitState(
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time=self._last_failure_time,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitStatus.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False


class CircuitBreakerRegistry:
    """One breaker per guarded dependency, owned by the recognition service."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        """Get or create the breaker for a dependency."""
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=self.config.failure_threshold,
                    recovery_timeout=self.config.recovery_timeout,
                    clock=self._clock,
                )
            return self._breakers[name]

    def get_states(self) -> dict[str, CircuitState]:
        with self._lock:
            breakers = list(self._breakers.items())
        return {name: breaker.get_state() for name, breaker in breakers}

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()
