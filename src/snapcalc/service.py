"""
Process-wide owner of the shared recognition state.
"""
import logging
from typing import Any

from .classification import ErrorClassifier, RecoveryStatistics
from .config import PipelineConfig
from .fallback import FallbackResolver, RuntimeCapabilities
from .persistence import BaseStatisticsStore, MemoryStatisticsStore
from .pipeline import RecognitionPipeline
from .resilience import CircuitBreakerRegistry
from .types import CameraErrorKind, ImagePreprocessor, ImageValidator, InferenceService

logger = logging.getLogger(__name__)


class RecognitionService:
    """Holds the classifier, statistics and circuit breakers shared by all pipelines.

    Created at startup and reset at shutdown. Statistics are restored from
    the store on ``startup()`` and written back on ``shutdown()``.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        store: BaseStatisticsStore | None = None,
        capabilities: RuntimeCapabilities | None = None,
    ):
        self.config = config or PipelineConfig()
        self.store = store or MemoryStatisticsStore()
        self.classifier = ErrorClassifier()
        self.statistics = RecoveryStatistics(self.classifier.strategy_mapper)
        self.breakers = CircuitBreakerRegistry(self.config.circuit_breaker)
        self.fallbacks = FallbackResolver(capabilities)
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def startup(self) -> None:
        """Validate configuration and restore persisted statistics.

        Raises:
            CameraError: configuration-error when the configuration is invalid

        """
        if self._started:
            return

        validation = self.config.validate()
        for warning in validation.warnings:
            logger.warning(f"Configuration warning: {warning}")
        if not validation.is_valid:
            raise self.classifier.create_camera_error(
                CameraErrorKind.CONFIGURATION_ERROR,
                f"Invalid configuration: {'; '.join(validation.errors)}",
            )

        await self.store.initialize()
        self.statistics.restore(await self.store.load_snapshot())
        self._started = True
        logger.info("Recognition service started")

    async def shutdown(self) -> None:
        """Persist statistics and reset shared state."""
        if not self._started:
            return

        try:
            await self.store.save_snapshot(self.statistics.snapshot())
        finally:
            self.breakers.reset_all()
            self.statistics.reset()
            await self.store.close()
            self._started = False
            logger.info("Recognition service stopped")

    async def __aenter__(self) -> "RecognitionService":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    def create_pipeline(
        self,
        inference: InferenceService,
        validator: ImageValidator | None = None,
        preprocessor: ImagePreprocessor | None = None,
        breaker_name: str = "inference",
        **kwargs: Any,
    ) -> RecognitionPipeline:
        """Build a pipeline wired to this service's shared state."""
        return RecognitionPipeline(
            inference,
            validator=validator,
            preprocessor=preprocessor,
            config=self.config,
            classifier=self.classifier,
            statistics=self.statistics,
            breaker=self.breakers.get(breaker_name),
            **kwargs,
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "started": self._started,
            "circuit_breakers": {
                name: state.to_dict() for name, state in self.breakers.get_states().items()
            },
            "statistics": self.statistics.get_statistics(),
        }
