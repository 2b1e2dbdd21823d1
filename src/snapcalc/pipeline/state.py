"""Stage transition table for a recognition run."""
import time

from ..classification import ErrorClassifier
from ..exceptions import ProcessingError
from ..types import ProcessingErrorKind, ProcessingStage, ProcessingState

# Forward edges only; every stage may also move to ERROR or back to IDLE
TRANSITIONS: dict[ProcessingStage, frozenset[ProcessingStage]] = {
    ProcessingStage.IDLE: frozenset({ProcessingStage.CAPTURING}),
    ProcessingStage.CAPTURING: frozenset({ProcessingStage.PREPROCESSING}),
    ProcessingStage.PREPROCESSING: frozenset({ProcessingStage.PROCESSING}),
    ProcessingStage.PROCESSING: frozenset({ProcessingStage.PROCESSING, ProcessingStage.PARSING}),
    ProcessingStage.PARSING: frozenset({ProcessingStage.VALIDATING}),
    ProcessingStage.VALIDATING: frozenset({ProcessingStage.COMPLETE}),
    ProcessingStage.COMPLETE: frozenset(),
    ProcessingStage.ERROR: frozenset(),
}

ALWAYS_ALLOWED = frozenset({ProcessingStage.ERROR, ProcessingStage.IDLE})


def can_transition(current: ProcessingStage, target: ProcessingStage) -> bool:
    return target in ALWAYS_ALLOWED or target in TRANSITIONS[current]


def advance(
    state: ProcessingState,
    stage: ProcessingStage,
    progress: float,
    operation: str,
    now: float | None = None,
    classifier: ErrorClassifier | None = None,
) -> tuple[ProcessingState, ProcessingError | None]:
    """Compute the state after moving to ``stage``.

    Returns the new state and no error, or the unchanged state and a
    processing-failed error when the move is not allowed.
    """
    if not can_transition(state.stage, stage):
        error = (classifier or ErrorClassifier()).create_processing_error(
            ProcessingErrorKind.PROCESSING_FAILED,
            f"Illegal stage transition {state.stage.value} -> {stage.value}",
            state.stage,
            retryable=False,
        )
        return state, error

    now = time.time() if now is None else now
    if stage == ProcessingStage.IDLE:
        start_time = None
    elif state.stage == ProcessingStage.IDLE or state.start_time is None:
        start_time = now
    else:
        start_time = state.start_time

    estimated_remaining = None
    if start_time is not None and 0 < progress < 100:
        elapsed = now - start_time
        estimated_remaining = max(0.0, elapsed / progress * 100 - elapsed)

    return ProcessingState(
        stage=stage,
        progress=progress,
        current_operation=operation,
        start_time=start_time,
        estimated_remaining=estimated_remaining,
    ), None
