"""
Command-line entry point: parse a course document into assignment JSON.
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from .config import Settings, configure_logging
from .document_loader import load_text
from .exceptions import StudioraError
from .extractors import DocumentType
from .formatter import format_all
from .models import parse_result_to_dict
from .pipeline import DualPipelineParser, ParseOptions, ProgressEvent

logger = logging.getLogger(__name__)


def print_progress(event: ProgressEvent) -> None:
    """Print one progress line to stderr."""
    print(f"[{event.stage.value}] {event.message}", file=sys.stderr)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studiora-parse",
        description="Extract assignments from a course document (text, markdown or PDF)"
    )
    parser.add_argument(
        "path",
        type=str,
        help="Path to the course document"
    )
    parser.add_argument(
        "--course",
        type=str,
        default=None,
        help="Course name or code (used for domain detection)"
    )
    parser.add_argument(
        "--type",
        dest="document_type",
        choices=[t.value for t in DocumentType],
        default=DocumentType.MIXED.value,
        help="Document type (default: mixed, auto-detected)"
    )
    parser.add_argument(
        "--year",
        type=int,
        default=None,
        help="Year for dates written without one (default: current year)"
    )
    parser.add_argument(
        "--semester-start",
        type=_iso_date,
        default=None,
        help="Semester start date (YYYY-MM-DD), used for week-based dates"
    )
    parser.add_argument(
        "--semester-end",
        type=_iso_date,
        default=None,
        help="Semester end date (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write JSON to this file instead of stdout"
    )
    parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip the language-model stages even if OPENAI_API_KEY is set"
    )
    parser.add_argument(
        "--display",
        action="store_true",
        help="Print formatted task titles; with --output, write the formatted records as JSON"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = build_arg_parser().parse_args(argv)

    try:
        settings = Settings.from_env()
    except StudioraError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)
    if args.no_ai:
        settings.openai_api_key = None

    try:
        text = load_text(args.path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    options = ParseOptions(
        course=args.course,
        document_type=args.document_type,
        default_year=args.year,
        semester_start=args.semester_start,
        semester_end=args.semester_end,
    )

    try:
        result = DualPipelineParser(settings).parse(text, options, on_progress=print_progress)
    except StudioraError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.display:
        items = format_all(result.assignments)
        for item in items:
            print(f"{item.assignment.date or 'no date':<10}  {item.priority:<6}  {item.full_title}")
        if not args.output:
            return 0
        payload = json.dumps([item.to_dict() for item in items], indent=2)
    else:
        payload = json.dumps(parse_result_to_dict(result), indent=2)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            f.write(payload)
        print(f"Saved {len(result.assignments)} assignment(s) to: {output_path}", file=sys.stderr)
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
