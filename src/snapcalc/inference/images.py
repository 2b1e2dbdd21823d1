"""Default image collaborators for data-URL encoded images."""
import logging
from typing import Any

from ..types import ImageValidation, PreprocessedImage

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("image/jpeg", "image/png", "image/webp")
MIN_PAYLOAD_CHARS = 100
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


def parse_data_url(image: str) -> tuple[str, str]:
    """Split a data URL into its mime type and base64 payload.

    Raises:
        ValueError: if ``image`` is not a data URL with a payload

    """
    if not image.startswith("data:"):
        raise ValueError("Invalid image data format - must be data URL")

    header, _, payload = image.partition(",")
    if not header or not payload:
        raise ValueError("Invalid image data format - missing header or data")

    return header.split(";")[0].removeprefix("data:"), payload


def estimate_size(image: str) -> int:
    """Approximate decoded byte size of a base64 payload."""
    payload = image.partition(",")[2] or image
    return len(payload) * 3 // 4


class DataURLImageValidator:
    """Checks format, size and payload length of a data-URL image."""

    def __init__(self, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES):
        self.max_image_bytes = max_image_bytes

    def validate_image(self, image: str) -> ImageValidation:
        errors: list[str] = []
        try:
            mime_type, payload = parse_data_url(image)
        except (ValueError, AttributeError) as e:
            return ImageValidation(is_valid=False, errors=(f"Image validation failed: {e}",))

        if mime_type not in SUPPORTED_FORMATS:
            errors.append(f"Unsupported image format: {mime_type}")

        size = estimate_size(image)
        if size > self.max_image_bytes:
            errors.append(f"Image too large: {size} bytes (max: {self.max_image_bytes})")

        if len(payload) < MIN_PAYLOAD_CHARS:
            errors.append("Invalid or corrupted image data")

        if errors:
            logger.debug(f"Image rejected: {'; '.join(errors)}")
        return ImageValidation(is_valid=not errors, errors=tuple(errors))


class PassthroughPreprocessor:
    """Hands the image through unchanged."""

    def process_image_for_ocr(self, image: str, options: dict[str, Any]) -> PreprocessedImage:
        size = estimate_size(image)
        return PreprocessedImage(image_data=image, original_size=size, processed_size=size)
