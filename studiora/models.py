"""
Data models for the assignment extraction pipeline.

All models are plain dataclasses. An ``Assignment`` is created by an
extractor, may be rewritten by the validation stage (same id, enriched
fields), and is finally passed through the deduplicator. The ``ParseResult``
is what callers receive.

These models represent:
- Assignments (also used for candidates before dedup/validation)
- Modules (week or module groupings found while scanning)
- Stage metadata describing which pipeline stages ran
- The final parse result
"""

import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


MIN_HOURS = 0.25
MAX_HOURS = 8.0
DEFAULT_HOURS = 2.0

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95

UNKNOWN_COURSE = "unknown"

# Assignment type vocabulary. Extensible: unknown strings are kept as-is.
ASSIGNMENT_TYPES = (
    "assignment", "quiz", "exam", "reading", "video", "discussion",
    "clinical", "lab", "project", "paper", "presentation", "simulation",
    "preparation", "case-study", "remediation", "homework", "essay",
    "report", "research", "activity", "other",
)


def new_assignment_id(prefix: str = "assignment") -> str:
    """Generate an opaque unique id such as ``regex_3f2a9c01b7de``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def clamp_hours(hours: Optional[float]) -> float:
    """Clamp an effort estimate into [MIN_HOURS, MAX_HOURS]."""
    if hours is None or hours <= 0:
        return DEFAULT_HOURS
    return max(MIN_HOURS, min(MAX_HOURS, float(hours)))


def clamp_confidence(confidence: Optional[float]) -> float:
    """Clamp a confidence score into [MIN_CONFIDENCE, MAX_CONFIDENCE]."""
    if confidence is None:
        return MIN_CONFIDENCE
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, float(confidence)))


@dataclass
class Assignment:
    """An extracted assignment (or a candidate before dedup/validation).

    ``date`` is an ISO ``YYYY-MM-DD`` string or None when unresolved.
    ``extracted_from`` holds the verbatim excerpt the record came from; it
    is only used to compute remainder text and is not part of the
    user-facing output.
    """
    text: str                   # Human-readable description, e.g. "Quiz 3: Chapter 5 Review"
    id: str = field(default_factory=new_assignment_id)
    date: Optional[str] = None  # ISO date or None if unknown
    type: str = "assignment"    # One of ASSIGNMENT_TYPES (or a domain-specific extension)
    hours: float = DEFAULT_HOURS  # Effort estimate, always within [MIN_HOURS, MAX_HOURS]
    points: Optional[int] = None  # Score weight if stated
    course: str = UNKNOWN_COURSE
    confidence: float = 0.7     # Heuristic score within [MIN_CONFIDENCE, MAX_CONFIDENCE]
    source: str = "regex"       # Provenance tag: "regex-schedule", "ai-remainder", ...
    week: Optional[int] = None
    module: Optional[int] = None
    due_time: Optional[str] = None  # e.g. "11:59PM"
    validated: bool = False     # Set when the language-model validation accepted the record
    validation_confidence: Optional[float] = None
    changes: List[str] = field(default_factory=list)  # Enhancements reported by validation
    extracted_from: Optional[str] = None
    line_index: Optional[int] = None  # Position in the scanned document, used for ordering


@dataclass
class Module:
    """A module or week grouping found during structural scanning."""
    number: int
    title: str
    course: str = UNKNOWN_COURSE
    chapters: List[str] = field(default_factory=list)
    key_topics: List[str] = field(default_factory=list)
    assignment_ids: List[str] = field(default_factory=list)


@dataclass
class StageMetadata:
    """Completion record for each pipeline stage."""
    regex: str = "pending"            # "completed" once pattern extraction ran
    ai_remainder: str = "skipped"     # "found-additional", "none-found", "failed" or "skipped"
    ai_validation: str = "skipped"    # "completed", "failed" or "skipped"
    consolidation: str = "pending"    # "completed" once merging finished


@dataclass
class ParseMetadata:
    """Provenance and summary information attached to a ParseResult."""
    method: str = "sequential-enhancement"
    document_type: str = "mixed"
    extractor: str = ""
    domain: str = "default"
    domain_name: str = ""
    confidence: float = MIN_CONFIDENCE  # Advisory only; never used to filter
    regex_found: int = 0
    ai_found_in_remainder: int = 0
    ai_discovered: int = 0
    invalidated_by_ai: int = 0
    total_final: int = 0
    remainder_length: int = 0
    summary: str = ""
    stages: StageMetadata = field(default_factory=StageMetadata)
    validation_error: Optional[str] = None
    remainder_error: Optional[str] = None
    consolidation_error: Optional[str] = None
    grading_breakdown: Dict[str, float] = field(default_factory=dict)
    course_info: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass
class ParseResult:
    """Pipeline output."""
    assignments: List[Assignment] = field(default_factory=list)
    modules: List[Module] = field(default_factory=list)
    events: List[Assignment] = field(default_factory=list)
    metadata: ParseMetadata = field(default_factory=ParseMetadata)


# Serialization helpers for JSON conversion

def assignment_to_dict(assignment: Assignment, include_internal: bool = False) -> Dict[str, Any]:
    """Convert an Assignment to a JSON-serializable dict.

    Args:
        assignment: Assignment to convert
        include_internal: Keep ``extracted_from`` and ``line_index``

    Returns:
        Dict representation
    """
    data = asdict(assignment)
    if not include_internal:
        data.pop("extracted_from", None)
        data.pop("line_index", None)
    return data


def parse_result_to_dict(result: ParseResult) -> Dict[str, Any]:
    """Convert a ParseResult to a JSON-serializable dict."""
    return {
        "assignments": [assignment_to_dict(a) for a in result.assignments],
        "modules": [asdict(m) for m in result.modules],
        "events": [assignment_to_dict(e) for e in result.events],
        "metadata": asdict(result.metadata),
    }
