"""Gemini vision client implementing the inference service protocol."""
import asyncio
import logging
import re
import time
from dataclasses import asdict, dataclass
from typing import Any

import aiohttp

from ..config import GeminiConfig
from ..exceptions import InferenceServiceError, InferenceTimeoutError
from ..expression import NO_EXPRESSION_SENTINEL, MathExpressionParser
from ..types import InferenceResponse

logger = logging.getLogger(__name__)

MATH_PROMPT = """
Analyze this image and extract ONLY mathematical expressions.
Return the mathematical expression in standard notation that can be calculated.
If multiple expressions are found, return the most prominent one.
If no mathematical expressions are found, return "NO_MATH_FOUND".

Rules:
- Return only the mathematical expression, no explanations
- Use standard operators: +, -, *, /, (, )
- Convert written numbers to digits (e.g., "five" -> "5")
- Handle fractions as division (e.g., "1/2" -> "1/2")
- Ignore any text that is not mathematical

Examples of valid responses:
- "2 + 3 * 4"
- "(15 - 3) / 2"
- "25 * 0.5"
- "NO_MATH_FOUND"
"""

_WELL_FORMED = re.compile(r"^\d+(\s*[+\-*/]\s*\d+)*$")


@dataclass
class UsageStats:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_tokens_used: int = 0
    average_processing_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class GeminiVisionClient:
    """Sends one ``generateContent`` request per call.

    HTTP failures are raised as ``InferenceServiceError`` carrying the status
    code so callers can classify and retry them; this client never retries.
    """

    def __init__(
        self,
        config: GeminiConfig | None = None,
        session: aiohttp.ClientSession | None = None,
        parser: MathExpressionParser | None = None,
    ):
        self.config = config or GeminiConfig.from_env()
        self.parser = parser or MathExpressionParser()
        self._session = session
        self._owns_session = session is None
        self._usage = UsageStats()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "GeminiVisionClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def analyze_image(self, image_b64: str, prompt: str | None = None) -> InferenceResponse:
        """Ask the model for the expression shown in a data-URL encoded image.

        Raises:
            InferenceServiceError: missing API key, malformed image data, HTTP
                or transport failure, or an unusable response body
            InferenceTimeoutError: when the request exceeds the configured timeout

        """
        start_time = time.monotonic()
        self._usage.total_requests += 1

        try:
            if not self.config.has_api_key:
                raise InferenceServiceError("LLM API key not configured", status=401)
            if not image_b64 or not image_b64.startswith("data:image/"):
                raise InferenceServiceError("Invalid image data format")

            response = await self._make_request(image_b64, prompt)
        except Exception:
            self._usage.failed_requests += 1
            self._update_average_processing_time(time.monotonic() - start_time)
            raise

        processing_time = time.monotonic() - start_time
        response.processing_time = processing_time
        self._usage.successful_requests += 1
        self._usage.total_tokens_used += response.tokens_used or 0
        self._update_average_processing_time(processing_time)
        return response

    async def _make_request(self, image_b64: str, prompt: str | None) -> InferenceResponse:
        header, _, data = image_b64.partition(",")
        mime_type = header.split(";")[0].removeprefix("data:")
        url = f"{self.config.base_url}/{self.config.model}:generateContent"

        body = {
            "contents": [{
                "parts": [
                    {"text": prompt or MATH_PROMPT},
                    {"inline_data": {"mime_type": mime_type, "data": data}},
                ]
            }],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_output_tokens,
                "topP": 0.8,
                "topK": 10,
            },
        }

        session = await self._get_session()
        try:
            async with session.post(
                url,
                params={"key": self.config.api_key},
                json=body,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as response:
                if response.status >= 400:
                    raise await self._http_error(response)
                payload = await response.json()
        except asyncio.TimeoutError:
            raise InferenceTimeoutError(self.config.timeout) from None
        except aiohttp.ClientError as e:
            raise InferenceServiceError(f"Network error: {e}") from e

        return self._parse_payload(payload)

    @staticmethod
    async def _http_error(response: aiohttp.ClientResponse) -> InferenceServiceError:
        try:
            error_data = await response.json()
            message = error_data.get("error", {}).get("message") or response.reason
        except (aiohttp.ContentTypeError, ValueError):
            message = response.reason

        status = response.status
        if status == 429:
            text = f"Rate limit exceeded: {message}"
        elif status in (401, 403):
            text = f"Authentication failed: {message}"
        elif status >= 500:
            text = f"Server error: {message}"
        else:
            text = f"API request failed: {status} - {message}"
        logger.warning(f"Gemini request failed with HTTP {status}")
        return InferenceServiceError(text, status=status)

    def _parse_payload(self, payload: dict[str, Any]) -> InferenceResponse:
        candidates = payload.get("candidates") or []
        if not candidates:
            raise InferenceServiceError("No response candidates received from API")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        if not parts:
            raise InferenceServiceError("No content in API response")

        raw_text = (parts[0].get("text") or "").strip()
        if not raw_text:
            raise InferenceServiceError("Empty response from API")

        expression = self.extract_expression(raw_text)
        tokens_used = (payload.get("usageMetadata") or {}).get("totalTokenCount", 0)

        return InferenceResponse(
            success=True,
            expression=expression or None,
            confidence=self.calculate_confidence(raw_text, expression),
            tokens_used=tokens_used,
        )

    def extract_expression(self, raw_text: str) -> str:
        """Reduce the model's reply to a normalized expression.

        Returns the no-expression sentinel when the model reported one, and an
        empty string when the reply holds no valid expression.
        """
        if NO_EXPRESSION_SENTINEL in raw_text.upper():
            return NO_EXPRESSION_SENTINEL

        expression = self.parser.normalize(raw_text)
        if not self.parser.validate_syntax(expression):
            logger.debug(f"Discarding model reply without a valid expression: {raw_text!r}")
            return ""
        return expression

    @staticmethod
    def calculate_confidence(raw_text: str, expression: str) -> float:
        """Heuristic confidence score for an extracted expression."""
        if not expression or expression == NO_EXPRESSION_SENTINEL:
            return 0.0

        confidence = 0.5
        if len(raw_text) < 50:
            confidence += 0.2
        if re.search(r"\d", expression):
            confidence += 0.2
        if _WELL_FORMED.match(expression.replace("(", "").replace(")", "")):
            confidence += 0.1
        return min(round(confidence, 10), 1.0)

    def _update_average_processing_time(self, elapsed: float) -> None:
        total = self._usage.total_requests
        current = self._usage.average_processing_time
        self._usage.average_processing_time = ((current * (total - 1)) + elapsed) / total

    def get_usage_stats(self) -> UsageStats:
        return UsageStats(**asdict(self._usage))

    def reset_usage_stats(self) -> None:
        self._usage = UsageStats()
