"""Shared fixtures for the snapcalc test suite."""
import pytest

from snapcalc.exceptions import InferenceServiceError
from snapcalc.types import InferenceResponse

PNG_DATA_URL = "data:image/png;base64," + "iVBORw0KGgo" * 20


class ScriptedInference:
    """Inference double that replays a script of responses and exceptions."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0
        self.images: list[str] = []

    async def analyze_image(self, image_b64, prompt=None):
        self.calls += 1
        self.images.append(image_b64)
        step = self.script[min(self.calls, len(self.script)) - 1]
        if isinstance(step, BaseException):
            raise step
        return step


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


def ok(expression: str, confidence: float = 0.9, tokens: int = 42) -> InferenceResponse:
    return InferenceResponse(success=True, expression=expression, confidence=confidence, tokens_used=tokens)


def server_error() -> InferenceServiceError:
    return InferenceServiceError("Server error: Service Unavailable", status=503)


@pytest.fixture
def image():
    return PNG_DATA_URL


@pytest.fixture
def sleep():
    return RecordingSleep()
