"""Alternative recovery paths for errors the pipeline could not recover from."""
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..exceptions import ClassifiedError, ProcessingError
from ..types import CameraErrorKind, ProcessingErrorKind

logger = logging.getLogger(__name__)


class FallbackOption(Enum):
    MANUAL_INPUT = "manual-input"
    FILE_UPLOAD = "file-upload"
    SCREEN_CAPTURE = "screen-capture"
    SIMPLIFIED_OCR = "simplified-ocr"
    OFFLINE_PARSING = "offline-parsing"
    ALTERNATIVE_LLM = "alternative-llm"
    BASIC_CALCULATOR = "basic-calculator"


@dataclass(frozen=True)
class FallbackStrategy:
    """Ranked alternatives offered for one coarse failure category."""

    triggering_condition: str
    ranked_options: tuple[FallbackOption, ...]
    recommended_option: FallbackOption
    user_message: str
    step_instructions: tuple[str, ...]


@dataclass
class FallbackResult:
    success: bool
    option: FallbackOption
    user_message: str
    result: Any = None
    error: BaseException | None = None


@dataclass(frozen=True)
class OptionInstructions:
    title: str
    steps: tuple[str, ...]


@dataclass(frozen=True)
class RuntimeCapabilities:
    """What the host application can offer beyond manual input."""

    file_read: bool = True
    screen_capture: bool = False
    simplified_ocr: bool = False
    offline_parsing: bool = False
    alternative_service: bool = False


FALLBACK_STRATEGIES: dict[str, FallbackStrategy] = {
    "camera-permission-denied": FallbackStrategy(
        triggering_condition="Camera access denied",
        ranked_options=(FallbackOption.FILE_UPLOAD, FallbackOption.MANUAL_INPUT),
        recommended_option=FallbackOption.FILE_UPLOAD,
        user_message="Camera access is not available. You can upload an image file or enter the expression manually.",
        step_instructions=(
            'Click "Upload Image" to select a photo from your device',
            'Or click "Manual Input" to type the mathematical expression',
        ),
    ),
    "camera-hardware-unavailable": FallbackStrategy(
        triggering_condition="Camera hardware not available",
        ranked_options=(FallbackOption.FILE_UPLOAD, FallbackOption.SCREEN_CAPTURE, FallbackOption.MANUAL_INPUT),
        recommended_option=FallbackOption.FILE_UPLOAD,
        user_message="Camera is not available. You can upload an image or use screen capture instead.",
        step_instructions=(
            "Upload an image file containing mathematical expressions",
            "Use screen capture to capture part of your screen",
            "Enter the expression manually using the calculator",
        ),
    ),
    "camera-capture-failed": FallbackStrategy(
        triggering_condition="Image capture failed",
        ranked_options=(FallbackOption.FILE_UPLOAD, FallbackOption.MANUAL_INPUT, FallbackOption.SCREEN_CAPTURE),
        recommended_option=FallbackOption.FILE_UPLOAD,
        user_message="Failed to capture image. Try uploading an existing image or entering manually.",
        step_instructions=(
            "Select an image file from your device",
            "Ensure the image contains clear mathematical expressions",
            "Or type the expression directly into the calculator",
        ),
    ),
    "llm-service-unavailable": FallbackStrategy(
        triggering_condition="Image analysis service unavailable",
        ranked_options=(FallbackOption.MANUAL_INPUT, FallbackOption.SIMPLIFIED_OCR, FallbackOption.OFFLINE_PARSING),
        recommended_option=FallbackOption.MANUAL_INPUT,
        user_message="Image analysis is temporarily unavailable. Please enter the expression manually.",
        step_instructions=(
            "Look at the captured image and type the mathematical expression",
            "Use standard notation: +, -, *, /, (, )",
            "The expression will be calculated normally",
        ),
    ),
    "llm-rate-limited": FallbackStrategy(
        triggering_condition="Too many requests to analysis service",
        ranked_options=(FallbackOption.MANUAL_INPUT, FallbackOption.OFFLINE_PARSING),
        recommended_option=FallbackOption.MANUAL_INPUT,
        user_message="Service rate limit reached. Please wait or enter the expression manually.",
        step_instructions=(
            "Wait a few minutes before trying camera capture again",
            "Or enter the mathematical expression manually",
            "Your calculation will work the same way",
        ),
    ),
    "expression-parsing-failed": FallbackStrategy(
        triggering_condition="Could not extract mathematical expression",
        ranked_options=(FallbackOption.MANUAL_INPUT, FallbackOption.ALTERNATIVE_LLM, FallbackOption.SIMPLIFIED_OCR),
        recommended_option=FallbackOption.MANUAL_INPUT,
        user_message="Could not detect mathematical expressions in the image. Please enter manually.",
        step_instructions=(
            "Look at your captured image",
            "Type the mathematical expression you see",
            "Use standard mathematical notation",
        ),
    ),
    "image-quality-poor": FallbackStrategy(
        triggering_condition="Image quality insufficient for analysis",
        ranked_options=(FallbackOption.MANUAL_INPUT, FallbackOption.FILE_UPLOAD),
        recommended_option=FallbackOption.MANUAL_INPUT,
        user_message="Image quality is too poor for analysis. Try a clearer image or manual input.",
        step_instructions=(
            "Capture a new image with better lighting",
            "Ensure mathematical expressions are clearly visible",
            "Or enter the expression manually",
        ),
    ),
    "network-unavailable": FallbackStrategy(
        triggering_condition="No internet connection for image analysis",
        ranked_options=(FallbackOption.OFFLINE_PARSING, FallbackOption.MANUAL_INPUT),
        recommended_option=FallbackOption.MANUAL_INPUT,
        user_message="Internet connection required for image analysis. Please enter manually.",
        step_instructions=(
            "Check your internet connection",
            "Enter the mathematical expression manually",
            "Camera features will work when connection is restored",
        ),
    ),
}

DEFAULT_STRATEGY = FallbackStrategy(
    triggering_condition="Operation failed",
    ranked_options=(FallbackOption.MANUAL_INPUT,),
    recommended_option=FallbackOption.MANUAL_INPUT,
    user_message="The operation failed. Please enter the expression manually.",
    step_instructions=("Enter the mathematical expression using the calculator keypad",),
)

PROCESSING_STRATEGY_KEYS: dict[ProcessingErrorKind, str] = {
    ProcessingErrorKind.LLM_SERVICE_ERROR: "llm-service-unavailable",
    ProcessingErrorKind.RATE_LIMIT_EXCEEDED: "llm-rate-limited",
    ProcessingErrorKind.PARSING_FAILED: "expression-parsing-failed",
    ProcessingErrorKind.VALIDATION_FAILED: "expression-parsing-failed",
    ProcessingErrorKind.IMAGE_INVALID: "image-quality-poor",
    ProcessingErrorKind.INSUFFICIENT_CONFIDENCE: "image-quality-poor",
    ProcessingErrorKind.PROCESSING_FAILED: "llm-service-unavailable",
}

CAMERA_STRATEGY_KEYS: dict[CameraErrorKind, str] = {
    CameraErrorKind.PERMISSION_DENIED: "camera-permission-denied",
    CameraErrorKind.HARDWARE_UNAVAILABLE: "camera-hardware-unavailable",
    CameraErrorKind.CAPTURE_FAILED: "camera-capture-failed",
    CameraErrorKind.NETWORK_ERROR: "network-unavailable",
}

OPTION_INSTRUCTIONS: dict[FallbackOption, OptionInstructions] = {
    FallbackOption.MANUAL_INPUT: OptionInstructions(
        "Enter expression manually",
        (
            "Use the calculator keypad to enter the mathematical expression",
            "Use standard notation: +, -, *, /, (, )",
            "Press equals to calculate the result",
        ),
    ),
    FallbackOption.FILE_UPLOAD: OptionInstructions(
        "Upload an image file",
        (
            "Click the upload button to select an image",
            "Choose a clear image containing mathematical expressions",
            "The image will be processed automatically",
        ),
    ),
    FallbackOption.SCREEN_CAPTURE: OptionInstructions(
        "Capture part of your screen",
        (
            "Click the screen capture button",
            "Select the area containing mathematical expressions",
            "The captured area will be processed for OCR",
        ),
    ),
    FallbackOption.SIMPLIFIED_OCR: OptionInstructions(
        "Use simplified text recognition",
        (
            "Basic text recognition will be attempted",
            "May work for simple, clearly written expressions",
            "Results may be less accurate than full OCR",
        ),
    ),
    FallbackOption.OFFLINE_PARSING: OptionInstructions(
        "Use offline expression parsing",
        (
            "Local parsing without internet connection",
            "Limited to basic mathematical expressions",
            "No advanced recognition features",
        ),
    ),
    FallbackOption.ALTERNATIVE_LLM: OptionInstructions(
        "Try alternative analysis service",
        (
            "Use backup image analysis service",
            "May have different capabilities or accuracy",
            "Requires additional service configuration",
        ),
    ),
    FallbackOption.BASIC_CALCULATOR: OptionInstructions(
        "Use basic calculator mode",
        (
            "Standard calculator functionality only",
            "No camera or OCR features",
            "Manual input using keypad",
        ),
    ),
}

# Outcome reported when an option has no injected handler: (success, message)
_DEFAULT_OUTCOMES: dict[FallbackOption, tuple[bool, str]] = {
    FallbackOption.MANUAL_INPUT: (True, "Please enter the mathematical expression manually using the calculator."),
    FallbackOption.FILE_UPLOAD: (True, "Please select an image file containing mathematical expressions."),
    FallbackOption.SCREEN_CAPTURE: (False, "Screen capture is not available on this platform."),
    FallbackOption.SIMPLIFIED_OCR: (False, "Simplified OCR is not available. Please use manual input."),
    FallbackOption.OFFLINE_PARSING: (False, "Offline parsing is not available. Please use manual input."),
    FallbackOption.ALTERNATIVE_LLM: (False, "Alternative LLM service is not configured. Please use manual input."),
    FallbackOption.BASIC_CALCULATOR: (True, "Using basic calculator mode. Enter expressions using the keypad."),
}

_HANDLED_MESSAGES: dict[FallbackOption, str] = {
    **{option: message for option, (_, message) in _DEFAULT_OUTCOMES.items()},
    FallbackOption.SCREEN_CAPTURE: "Screen capture mode activated. Select the area containing mathematical expressions.",
    FallbackOption.SIMPLIFIED_OCR: "Attempting simplified text recognition.",
    FallbackOption.OFFLINE_PARSING: "Parsing the expression offline.",
    FallbackOption.ALTERNATIVE_LLM: "Retrying with the alternative analysis service.",
}

FallbackHandler = Callable[[Any], Any]


class FallbackResolver:
    """Turns a classified error into ranked alternative next steps.

    Handlers for individual options can be injected; a handler receives the
    execution context and returns the option's result (or an awaitable).
    Without a handler the option reports its built-in outcome.
    """

    def __init__(
        self,
        capabilities: RuntimeCapabilities | None = None,
        handlers: dict[FallbackOption, FallbackHandler] | None = None,
    ):
        self.capabilities = capabilities or RuntimeCapabilities()
        self.handlers: dict[FallbackOption, FallbackHandler] = dict(handlers or {})

    def register_handler(self, option: FallbackOption, handler: FallbackHandler) -> None:
        self.handlers[option] = handler

    @staticmethod
    def get_strategy_key(error: ClassifiedError) -> str:
        """Coarsen an error into the key of its fallback strategy."""
        if isinstance(error, ProcessingError):
            if error.kind == ProcessingErrorKind.TIMEOUT:
                if "network" in error.message.lower():
                    return "network-unavailable"
                return "llm-service-unavailable"
            return PROCESSING_STRATEGY_KEYS.get(error.kind, "llm-service-unavailable")
        return CAMERA_STRATEGY_KEYS.get(error.kind, "camera-capture-failed")

    def get_fallback_strategy(self, error: ClassifiedError) -> FallbackStrategy:
        return FALLBACK_STRATEGIES.get(self.get_strategy_key(error), DEFAULT_STRATEGY)

    def is_fallback_available(
        self,
        option: FallbackOption,
        capabilities: RuntimeCapabilities | None = None,
    ) -> bool:
        caps = capabilities or self.capabilities
        if option in (FallbackOption.MANUAL_INPUT, FallbackOption.BASIC_CALCULATOR):
            return True
        if option == FallbackOption.FILE_UPLOAD:
            return caps.file_read
        if option == FallbackOption.SCREEN_CAPTURE:
            return caps.screen_capture
        if option == FallbackOption.SIMPLIFIED_OCR:
            return caps.simplified_ocr
        if option == FallbackOption.OFFLINE_PARSING:
            return caps.offline_parsing
        if option == FallbackOption.ALTERNATIVE_LLM:
            return caps.alternative_service
        return False

    def get_available_fallbacks(
        self,
        error: ClassifiedError,
        capabilities: RuntimeCapabilities | None = None,
    ) -> list[FallbackOption]:
        """Ranked options usable on this runtime; manual input is always included."""
        strategy = self.get_fallback_strategy(error)
        available = [
            option for option in strategy.ranked_options
            if self.is_fallback_available(option, capabilities)
        ]
        if FallbackOption.MANUAL_INPUT not in available:
            available.append(FallbackOption.MANUAL_INPUT)
        return available

    async def execute_fallback(self, option: FallbackOption, context: Any = None) -> FallbackResult:
        """Run an option's side effect; failures come back as an unsuccessful result."""
        handler = self.handlers.get(option)
        try:
            if handler is None:
                success, message = _DEFAULT_OUTCOMES[option]
                return FallbackResult(success=success, option=option, user_message=message)

            result = handler(context)
            if inspect.isawaitable(result):
                result = await result
            return FallbackResult(
                success=True,
                option=option,
                user_message=_HANDLED_MESSAGES[option],
                result=result,
            )
        except Exception as e:
            logger.warning(f"Fallback option {option.value} failed: {e}")
            return FallbackResult(
                success=False,
                option=option,
                user_message=f"Fallback option {option.value} failed: {e}",
                error=e,
            )

    @staticmethod
    def get_option_instructions(option: FallbackOption) -> OptionInstructions:
        return OPTION_INSTRUCTIONS[option]

    def create_fallback_instructions(
        self,
        error: ClassifiedError,
        available_options: list[FallbackOption],
    ) -> list[str]:
        """Printable instructions describing the problem and each alternative."""
        strategy = self.get_fallback_strategy(error)
        instructions = [f"Problem: {strategy.triggering_condition}", ""]

        if available_options:
            instructions.append("Available alternatives:")
            for index, option in enumerate(available_options, start=1):
                option_instructions = self.get_option_instructions(option)
                instructions.append(f"{index}. {option_instructions.title}")
                instructions.extend(f"   - {step}" for step in option_instructions.steps)
        else:
            instructions.append("No alternative options are currently available.")
            instructions.append("Please try again later or contact support.")

        return instructions
