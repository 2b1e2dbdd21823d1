"""Recognition pipeline orchestration."""
from .orchestrator import AUTO_RETRY_KINDS, RecognitionPipeline
from .state import TRANSITIONS, advance, can_transition

__all__ = [
    'AUTO_RETRY_KINDS',
    'RecognitionPipeline',
    'TRANSITIONS',
    'advance',
    'can_transition',
]
