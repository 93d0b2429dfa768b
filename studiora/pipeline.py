"""
Dual-pipeline orchestrator.

Runs the stages strictly in sequence:

    starting -> regex -> regex-complete -> ai-remainder -> ai-validate
             -> merging -> complete

with ``error`` reachable from any stage. The language-model stages only
run when a credential is configured; their failures are recorded in the
result metadata and never abort the parse.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import Settings
from .date_resolver import DateResolver
from .dedupe import dedupe
from .domains import Domain, DomainOverrides, build_config
from .exceptions import ParseInputError
from .extractor_base import infer_course, normalize_text, sort_and_clean
from .extractors import DocumentType, create_extractor
from .llm_client import LLMClient
from .models import (
    Assignment, MAX_CONFIDENCE, MIN_CONFIDENCE, ParseMetadata, ParseResult, UNKNOWN_COURSE,
    clamp_confidence, clamp_hours,
)

logger = logging.getLogger(__name__)

REMAINDER_MIN_LENGTH = 100
PAST_DATE_FALLBACK_DAYS = 7
REMAINDER_MARKER = "[EXTRACTED BY REGEX]"

# Aggregate confidence weights
BASE_CONFIDENCE = 0.6
VALIDATED_WEIGHT = 0.2
DATED_WEIGHT = 0.1
PLAUSIBLE_COUNT_BONUS = 0.1
PLAUSIBLE_COUNT = (5, 100)


class Stage(Enum):
    STARTING = "starting"
    REGEX = "regex"
    REGEX_COMPLETE = "regex-complete"
    AI_REMAINDER = "ai-remainder"
    AI_VALIDATE = "ai-validate"
    MERGING = "merging"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """One notification sent to the progress observer."""
    stage: Stage
    message: str
    results: Optional[List[Assignment]] = None  # Partial results, when the stage has any


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class ParseOptions:
    """Per-call parse options."""
    course: Optional[str] = None
    document_type: Optional[Union[str, DocumentType]] = None  # None means "mixed"
    user_courses: Optional[List[str]] = None
    default_year: Optional[int] = None      # Falls back to Settings.default_year, then today's year
    semester_start: Optional[date] = None
    semester_end: Optional[date] = None
    overrides: Optional[DomainOverrides] = None
    domain: Optional[Domain] = None         # Force a domain instead of detecting one
    today: Optional[date] = None            # Reference date; defaults to date.today()


def compute_remainder(text: str, assignments: Sequence[Assignment]) -> str:
    """Remove every matched excerpt from the text.

    Longer excerpts claim their span first; each excerpt takes the first
    occurrence not already claimed. Spans are replaced from the end of the
    text backwards so earlier offsets stay valid, and runs of markers
    collapse into one.
    """
    excerpts = sorted(
        (a.extracted_from.strip() for a in assignments if a.extracted_from and a.extracted_from.strip()),
        key=lambda s: (-len(s), s),
    )
    claimed: List[Tuple[int, int]] = []
    for excerpt in excerpts:
        start = text.find(excerpt)
        while start != -1:
            end = start + len(excerpt)
            if not any(start < e and s < end for s, e in claimed):
                claimed.append((start, end))
                break
            start = text.find(excerpt, start + 1)

    remainder = text
    for start, end in sorted(claimed, reverse=True):
        remainder = remainder[:start] + f"\n{REMAINDER_MARKER}\n" + remainder[end:]
    remainder = re.sub(r'(' + re.escape(REMAINDER_MARKER) + r'\s*)+', REMAINDER_MARKER + '\n', remainder)
    return remainder.strip()


def meaningful_length(remainder: str) -> int:
    """Length of the remainder once markers and whitespace runs are dropped."""
    return len(' '.join(remainder.replace(REMAINDER_MARKER, ' ').split()))


def apply_merges(assignments: Sequence[Assignment], merges: Sequence[Dict]) -> List[Assignment]:
    """Drop records named in ``removed`` when the ``kept`` record exists."""
    ids = {a.id for a in assignments}
    removed = set()
    for merge in merges:
        kept = str(merge.get('kept'))
        if kept not in ids or kept in removed:
            continue
        for other in merge.get('removed') or []:
            other = str(other)
            if other != kept and other in ids:
                removed.add(other)
    if removed:
        logger.info("Consolidation removed %d duplicate(s)", len(removed))
    return [a for a in assignments if a.id not in removed]


def post_process(assignments: Sequence[Assignment], today: date) -> List[Assignment]:
    """Final cleanup applied to every record leaving the pipeline.

    Past dates are replaced by ``today + PAST_DATE_FALLBACK_DAYS`` as a
    placeholder; hours and confidence are clamped; records with too-short
    text are dropped.
    """
    fallback = (today + timedelta(days=PAST_DATE_FALLBACK_DAYS)).isoformat()
    cleaned = []
    for assignment in assignments:
        resolved = assignment.date
        if resolved:
            try:
                if date.fromisoformat(resolved) < today:
                    logger.debug("Past date %s on %r reset to %s", resolved, assignment.text, fallback)
                    resolved = fallback
            except ValueError:
                resolved = None
        cleaned.append(replace(
            assignment,
            text=assignment.text.strip(),
            date=resolved,
            hours=clamp_hours(assignment.hours),
            confidence=clamp_confidence(assignment.confidence),
            course=assignment.course or UNKNOWN_COURSE,
            source=assignment.source or "regex",
        ))
    return sort_and_clean(dedupe(cleaned))


def calculate_final_confidence(assignments: Sequence[Assignment]) -> float:
    """Advisory confidence for the whole result; never used to filter."""
    if not assignments:
        return MIN_CONFIDENCE
    total = len(assignments)
    validated = sum(1 for a in assignments if a.validated)
    dated = sum(1 for a in assignments if a.date)

    confidence = BASE_CONFIDENCE
    confidence += (validated / total) * VALIDATED_WEIGHT
    confidence += (dated / total) * DATED_WEIGHT
    if PLAUSIBLE_COUNT[0] <= total <= PLAUSIBLE_COUNT[1]:
        confidence += PLAUSIBLE_COUNT_BONUS
    return round(min(MAX_CONFIDENCE, confidence), 4)


class DualPipelineParser:
    """Pattern extraction followed by optional language-model enhancement."""

    def __init__(self, settings: Optional[Settings] = None, llm_client: Optional[LLMClient] = None):
        """Initialize the parser.

        Args:
            settings: Runtime settings; defaults to ``Settings()`` (no credential)
            llm_client: Optional pre-built client, mainly for tests
        """
        self.settings = settings or Settings()
        self.llm = llm_client if llm_client is not None else LLMClient(self.settings)

    @property
    def ai_enabled(self) -> bool:
        return self.settings.has_credential and self.llm.available

    def _check_input(self, text, options: ParseOptions) -> None:
        if not isinstance(text, str):
            raise ParseInputError(f"Document text must be a string, got {type(text).__name__}")
        if not text.strip():
            raise ParseInputError("Document text is empty")
        if options.user_courses and not options.course:
            raise ParseInputError("A course is required when user_courses is supplied")

    def parse(self, text: str, options: Optional[ParseOptions] = None,
              on_progress: Optional[ProgressCallback] = None) -> ParseResult:
        """Parse a document into assignments.

        Args:
            text: Raw document text
            options: Per-call options
            on_progress: Optional observer called at every stage transition

        Returns:
            ParseResult with assignments, modules, events and metadata

        Raises:
            ParseInputError: If the text or options are unusable (before any stage runs)
        """
        options = options or ParseOptions()
        self._check_input(text, options)

        def emit(stage: Stage, message: str, results: Optional[List[Assignment]] = None) -> None:
            logger.info("[%s] %s", stage.value, message)
            if on_progress is not None:
                on_progress(ProgressEvent(stage=stage, message=message, results=results))

        try:
            return self._run(text, options, emit)
        except Exception as e:
            emit(Stage.ERROR, f"Parsing failed: {e}")
            raise

    def _run(self, text: str, options: ParseOptions, emit) -> ParseResult:
        today = options.today or date.today()
        normalized = normalize_text(text)
        course = options.course or infer_course(normalized)
        metadata = ParseMetadata()

        emit(Stage.STARTING, "Starting document parse...")
        if not options.course:
            logger.info("No course given; inferred '%s'", course)
        if options.user_courses and course.lower() not in {c.lower() for c in options.user_courses}:
            metadata.warnings.append(f"Course '{course}' is not one of the user's courses")

        # Stage 1: pattern extraction
        emit(Stage.REGEX, "Regex scanning for assignments...")
        config = build_config(course, normalized, options.overrides, options.domain)
        resolver = DateResolver(
            default_year=options.default_year or self.settings.default_year,
            today=today,
            semester_start=options.semester_start or self.settings.semester_start,
            semester_end=options.semester_end or self.settings.semester_end,
        )
        document_type = DocumentType.parse(options.document_type)
        extractor = create_extractor(document_type, config, resolver, normalized)
        extraction = extractor.run(normalized, course)
        regex_results = extraction.assignments

        metadata.document_type = document_type.value if document_type else str(options.document_type)
        metadata.extractor = extractor.name
        metadata.domain = config.domain.value
        metadata.domain_name = config.domain_name
        metadata.regex_found = len(regex_results)
        metadata.grading_breakdown = extraction.grading_breakdown
        metadata.course_info = extraction.course_info
        metadata.stages.regex = "completed"
        emit(Stage.REGEX_COMPLETE, f"Regex found {len(regex_results)} assignments", list(regex_results))

        # Stage 2: remainder mining
        remainder = compute_remainder(normalized, regex_results)
        metadata.remainder_length = meaningful_length(remainder)
        logger.info("Remainder text: %d characters", metadata.remainder_length)
        remainder_results: List[Assignment] = []
        if self.ai_enabled:
            if metadata.remainder_length > REMAINDER_MIN_LENGTH:
                emit(Stage.AI_REMAINDER, "AI analyzing remaining text...")
                outcome = self.llm.extract_remainder(remainder, regex_results, course, config, resolver)
                remainder_results = outcome.assignments
                if outcome.ok:
                    metadata.stages.ai_remainder = "found-additional" if remainder_results else "none-found"
                else:
                    metadata.stages.ai_remainder = "failed"
                    metadata.remainder_error = outcome.error
                    metadata.warnings.append(f"Remainder analysis failed: {outcome.error}")
            else:
                metadata.stages.ai_remainder = "none-found"
        metadata.ai_found_in_remainder = len(remainder_results)

        # Stage 3: validation
        validated: List[Assignment] = list(regex_results)
        discovered: List[Assignment] = []
        if self.ai_enabled and regex_results:
            emit(Stage.AI_VALIDATE, "AI validating and enhancing results...")
            outcome = self.llm.validate(normalized, regex_results, course, metadata.document_type,
                                        config, resolver)
            validated = outcome.assignments
            discovered = outcome.discovered
            metadata.invalidated_by_ai = len(outcome.invalid_ids)
            if outcome.ok:
                metadata.stages.ai_validation = "completed"
            else:
                metadata.stages.ai_validation = "failed"
                metadata.validation_error = outcome.error
                metadata.warnings.append(f"Validation failed: {outcome.error}")
        metadata.ai_discovered = len(discovered)

        # Stage 4: merging
        emit(Stage.MERGING, "Consolidating all results...")
        merged = dedupe(validated + discovered + remainder_results)
        if self.ai_enabled and len(merged) > 1:
            outcome = self.llm.consolidate(merged)
            if outcome.ok:
                merged = dedupe(apply_merges(merged, outcome.merges))
            else:
                metadata.consolidation_error = outcome.error
        final = post_process(merged, today)
        metadata.stages.consolidation = "completed"

        metadata.total_final = len(final)
        metadata.confidence = calculate_final_confidence(final)
        metadata.summary = (
            f"{len(final)} assignments ({metadata.regex_found} regex, "
            f"{sum(1 for a in final if a.validated)} AI-validated, "
            f"{metadata.ai_found_in_remainder + metadata.ai_discovered} AI-discovered)"
        )

        result = ParseResult(
            assignments=final,
            modules=extraction.modules,
            events=extraction.events,
            metadata=metadata,
        )
        emit(Stage.COMPLETE, "Parsing complete!", list(final))
        return result
