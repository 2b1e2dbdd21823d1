"""Command line entry point."""
import argparse
import asyncio
import base64
import json
import logging
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path

from .config import GeminiConfig, ModerateConfidence, PipelineConfig
from .exceptions import ClassifiedError
from .expression import MathExpressionParser, format_for_display
from .inference import GeminiVisionClient
from .persistence import SQLAlchemyStatisticsStore
from .service import RecognitionService
from .types import ImageSource

logger = logging.getLogger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="snapcalc",
        description="Recognize and evaluate photographed arithmetic expressions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  snapcalc evaluate "2 + 3 * 4"
  snapcalc recognize photo.jpg
  snapcalc recognize screenshot.png --source upload --json
        """
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    evaluate = subparsers.add_parser("evaluate", help="Parse and evaluate an expression")
    evaluate.add_argument("expression", help="Arithmetic expression, e.g. '(15 - 3) / 2'")

    recognize = subparsers.add_parser("recognize", help="Recognize the expression in an image file")
    recognize.add_argument("image", type=Path, help="Path to a JPEG, PNG or WEBP image")
    recognize.add_argument(
        "--source", choices=[source.value for source in ImageSource], default=ImageSource.UPLOAD.value,
        help="Where the image came from"
    )
    recognize.add_argument(
        "--surface-warnings", action="store_true",
        help="Attach moderate-confidence warnings to the result"
    )
    recognize.add_argument(
        "--database", type=str,
        help="SQLAlchemy URL for recovery statistics (default: SQLite in ~/.snapcalc)"
    )
    recognize.add_argument(
        "--json", action="store_true",
        help="Print the result as JSON"
    )

    return parser


def run_evaluate(expression: str) -> int:
    parser = MathExpressionParser()
    parsed = parser.parse(expression)
    if not parsed.is_valid:
        print(f"Invalid expression: {parsed.error}")
        for suggestion in parser.get_suggestions(expression):
            print(f"  - {suggestion}")
        return 1

    evaluation = parser.evaluate(parsed.normalized_expression)
    if not evaluation.is_valid:
        print(f"Cannot evaluate {format_for_display(parsed.normalized_expression)}: {evaluation.error}")
        return 1

    print(f"{format_for_display(parsed.normalized_expression)} = {evaluation.result}")
    print(f"complexity: {parsed.complexity.value}")
    return 0


def read_image(path: Path) -> str:
    """Load an image file as a data URL."""
    mime_type, _ = mimetypes.guess_type(path.name)
    payload = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type or 'application/octet-stream'};base64,{payload}"


async def run_recognize(args: argparse.Namespace) -> int:
    config = PipelineConfig.from_env()
    if args.surface_warnings:
        config = replace(config, confidence=replace(config.confidence, moderate=ModerateConfidence.SURFACE))

    gemini_config = GeminiConfig.from_env()
    if not gemini_config.has_api_key:
        logger.warning("GEMINI_API_KEY is not set; recognition will fail")

    try:
        image = read_image(args.image)
    except OSError as e:
        print(f"Cannot read {args.image}: {e}", file=sys.stderr)
        return 2

    service = RecognitionService(config, store=SQLAlchemyStatisticsStore(args.database))
    try:
        await service.startup()
    except ClassifiedError as error:
        print(f"Cannot start: {error.message}", file=sys.stderr)
        return 2

    try:
        async with GeminiVisionClient(gemini_config) as client:
            pipeline = service.create_pipeline(client)
            try:
                result = await pipeline.process_image(image, args.source)
            except ClassifiedError as error:
                print_failure(service, pipeline.get_retry_suggestions(error), error)
                return 1
    finally:
        await service.shutdown()

    if args.json:
        data = result.to_dict()
        data.pop("original_image")
        print(json.dumps(data, indent=2))
    else:
        print(f"{format_for_display(result.recognized_expression)} = {result.calculation_result}")
        print(f"confidence: {result.confidence:.2f}  retries: {result.retry_count}")
        for warning in result.warnings:
            print(f"warning: {warning}")
    return 0


def print_failure(service: RecognitionService, suggestions: list[str], error: ClassifiedError) -> None:
    print(f"Recognition failed ({error.kind.value}): {error.message}", file=sys.stderr)
    print(f"Suggested action: {error.suggested_action}", file=sys.stderr)
    for suggestion in suggestions:
        print(f"  - {suggestion}", file=sys.stderr)

    options = service.fallbacks.get_available_fallbacks(error)
    print("", file=sys.stderr)
    for line in service.fallbacks.create_fallback_instructions(error, options):
        print(line, file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "evaluate":
        return run_evaluate(args.expression)
    return asyncio.run(run_recognize(args))


if __name__ == "__main__":
    sys.exit(main())
