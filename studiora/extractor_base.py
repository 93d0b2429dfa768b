"""
Shared machinery for the pattern-based extractors.

Every extractor works on text produced by ``normalize_text`` so the same
patterns behave the same way regardless of document shape. Line rules are
tried in order and the first match wins; specific rules ("Quiz N:",
"Lab N:", "HESI") come before generic bullet and keyword fallbacks.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from .date_resolver import DateResolver
from .dedupe import is_duplicate
from .domains import Domain, ParserConfig
from .models import (
    Assignment, Module, UNKNOWN_COURSE,
    clamp_confidence, clamp_hours, new_assignment_id,
)

logger = logging.getLogger(__name__)

EXPLICIT_CONFIDENCE = 0.85
GENERIC_CONFIDENCE = 0.7
RECOVERY_CONFIDENCE = 0.6
MIN_TEXT_LENGTH = 3
MAX_LINE_LENGTH = 200

POINTS = re.compile(r'\(?\b(\d+)\s*(?:pts?|points?)\b\)?', re.IGNORECASE)
DUE_TIME = re.compile(r'\b(\d{1,2}(?::\d{2})?\s*[ap]\.?m\.?)', re.IGNORECASE)
DUE_CLAUSE = re.compile(r"\s*[(\[]?\s*\b(?:(?:is|are)\s+)?due\b.*$", re.IGNORECASE)
WEIGHT_LINE = re.compile(r"^[-•*]?\s*[^:\n]{1,40}:\s*\d+(?:\.\d+)?\s*%\s*$")
POINTS_CLAUSE = re.compile(r'\s*\(\s*\d+\s*(?:pts?|points?)\s*\)', re.IGNORECASE)

SECTION_WORDS = re.compile(
    r'^(topics?|objectives?|goals?|overview|content|materials|outcomes?|description)\b\s*:?',
    re.IGNORECASE,
)
COURSE_CODE = re.compile(r'\b([A-Z]{2,5})\s?-?\s?(\d{3,4}[A-Z]?)\b(?:\s*[:\-]\s*([^\n]+))?')
NURSING_CODE = re.compile(r'\b(?:NURS|NUR|NSG)\s*-?\s*(\d{3,4})\b', re.IGNORECASE)
NURSING_CODE_RANGES = (
    (310, 319, 'adulthealth'),
    (320, 325, 'geronto'),
    (330, 339, 'obgyn'),
)


def _keywords(course: str, *words: str) -> List[Tuple[Pattern, str]]:
    return [(re.compile(r'\b' + re.escape(w) + r'\b', re.IGNORECASE), course) for w in words]


COURSE_KEYWORDS = tuple(
    _keywords('obgyn', 'ob', 'obgyn', 'maternal', 'birthing', 'childbearing', 'pregnancy',
              'labor and delivery', 'postpartum', 'newborn', 'fetal')
    + _keywords('adulthealth', 'adult health', 'cardiac', 'cardiovascular', 'respiratory',
                'pulmonary', 'hematology', 'endocrine', 'diabetes', 'renal',
                'musculoskeletal', 'neurological')
    + _keywords('nclex', 'nclex', 'hesi', 'licensing exam', 'rn exam')
    + _keywords('geronto', 'geronto', 'gerontology', 'gero', 'elderly', 'aging',
                'older adult', 'dementia', 'alzheimer')
)
ASSIGNMENT_WORDS = re.compile(
    r'\b(assignment|homework|quiz|exam|midterm|test|reading|read|discussion|post|submit|'
    r'complete|lab|project|paper|essay|presentation|clinical|simulation|video|watch|'
    r'case study|care plan|report|worksheet|prepare)\b',
    re.IGNORECASE,
)


def normalize_text(text: str) -> str:
    """Normalize raw document text before any pattern is applied.

    Smart quotes and dashes become ASCII, tabs become " | " column
    separators, runs of spaces collapse, and colons get a single trailing
    space (times such as 11:59 are left alone). Line structure is kept.
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[‘’‚′]', "'", text)
    text = re.sub(r'[“”„″]', '"', text)
    text = re.sub(r'[–—−]', '-', text)
    text = text.replace('：', ':').replace(' ', ' ')
    text = re.sub(r'\t+', ' | ', text)
    text = re.sub(r'[ \f\v]+', ' ', text)
    text = re.sub(r'[ ]*(?<!\d):(?!\d)[ ]*', ': ', text)
    text = '\n'.join(line.strip() for line in text.split('\n'))
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def clean_title(text: str) -> str:
    """Strip due clauses, points and bullet markers from a title."""
    title = POINTS_CLAUSE.sub('', text)
    title = DUE_CLAUSE.sub('', title)
    title = re.sub(r'^[-•*>]+\s*', '', title)
    return title.strip(' -:;,|')


def extract_points(text: str) -> Optional[int]:
    match = POINTS.search(text)
    return int(match.group(1)) if match else None


def extract_due_time(text: str) -> Optional[str]:
    match = DUE_TIME.search(text)
    if not match:
        return None
    return re.sub(r'[\s.]', '', match.group(1)).upper()


def infer_course(text: str) -> str:
    """Guess a course identifier for a document given without one.

    Topic keywords are checked first, then nursing course-number ranges,
    then any course code found in the text.

    Args:
        text: Normalized document text

    Returns:
        Course identifier, or "unknown" when nothing matches
    """
    for pattern, course in COURSE_KEYWORDS:
        if pattern.search(text):
            return course

    nursing = NURSING_CODE.search(text)
    if nursing:
        number = int(nursing.group(1))
        for low, high, course in NURSING_CODE_RANGES:
            if low <= number <= high:
                return course

    code = COURSE_CODE.search(text)
    if code:
        return f"{code.group(1)} {code.group(2)}"
    return UNKNOWN_COURSE


@dataclass(frozen=True)
class LineRule:
    """One ordered line pattern."""
    name: str
    pattern: Pattern
    confidence: float
    type: Optional[str] = None           # None -> infer with the domain config
    build: Optional[Callable[[re.Match], str]] = None  # Builds the text from the match
    default_points: Optional[int] = None


def _quiz_text(m: re.Match) -> str:
    return f"Quiz {m.group(1)}: {clean_title(m.group(2))}"


def _lab_text(m: re.Match) -> str:
    return f"Lab {m.group(1)}: {clean_title(m.group(2))}"


def _numbered_text(m: re.Match) -> str:
    title = clean_title(m.group(3) or "")
    label = f"{m.group(1).title()} {m.group(2)}" if m.group(2) else m.group(1).title()
    return f"{label}: {title}" if title else label


def build_line_rules(domain: Domain) -> Tuple[LineRule, ...]:
    """Assemble the ordered rule list for a domain.

    Order: quiz, domain-specific rules, other numbered items, bullets,
    then keyword containment.
    """
    rules: List[LineRule] = [
        LineRule('quiz', re.compile(r'\bQuiz\s+(\d+)\s*:\s*([^(\n]+)', re.IGNORECASE),
                 EXPLICIT_CONFIDENCE, type='quiz', build=_quiz_text),
    ]
    if domain is Domain.NURSING:
        rules += [
            LineRule('hesi', re.compile(r'\b(HESI\b[^(\n]*)', re.IGNORECASE),
                     EXPLICIT_CONFIDENCE, type='exam',
                     build=lambda m: clean_title(m.group(1)), default_points=50),
            LineRule('clinical', re.compile(r'^(?:[-•*]\s*)?(clinical\b[^\n]*)', re.IGNORECASE),
                     EXPLICIT_CONFIDENCE, type='clinical',
                     build=lambda m: clean_title(m.group(1))),
        ]
    elif domain is Domain.ENGINEERING:
        rules += [
            LineRule('lab', re.compile(r'\bLab\s+(\d+)\s*:\s*([^\n]+)', re.IGNORECASE),
                     EXPLICIT_CONFIDENCE, type='lab', build=_lab_text),
            LineRule('code-review', re.compile(r'\b(code review|sprint\s*\d*)\b\s*:?\s*([^\n]*)',
                                               re.IGNORECASE),
                     EXPLICIT_CONFIDENCE, type='code-review',
                     build=lambda m: clean_title(f"{m.group(1)}: {m.group(2)}" if m.group(2).strip()
                                                 else m.group(1))),
        ]
    rules += [
        LineRule('numbered', re.compile(
            r'^(?:[-•*]\s*)?(assignment|homework|lab|project|exam|midterm|final exam|'
            r'discussion|paper|essay|presentation|case study)\s*#?\s*(\d+)?\s*:\s*([^\n]*)',
            re.IGNORECASE),
                 EXPLICIT_CONFIDENCE, build=_numbered_text),
        LineRule('bullet', re.compile(r'^[-•*]\s*(.+?)(?:\s*\((?:due:\s*)?[^)]*\))?$',
                                      re.IGNORECASE),
                 GENERIC_CONFIDENCE, build=lambda m: clean_title(m.group(1))),
        LineRule('keyword', ASSIGNMENT_WORDS, GENERIC_CONFIDENCE),
    ]
    return tuple(rules)


@dataclass
class ExtractionResult:
    """Everything one extractor found in a document."""
    assignments: List[Assignment] = field(default_factory=list)
    modules: List[Module] = field(default_factory=list)
    events: List[Assignment] = field(default_factory=list)
    grading_breakdown: Dict[str, float] = field(default_factory=dict)
    course_info: Dict[str, str] = field(default_factory=dict)


class Extractor(ABC):
    """A pattern extractor for one document shape.

    Subclasses implement ``detect`` and ``scan``. ``extract`` and ``run``
    add the missed-assignment recovery sweep and final cleanup.
    """

    name = "generic"

    def __init__(self, config: ParserConfig, resolver: DateResolver):
        self.config = config
        self.resolver = resolver
        self.rules = build_line_rules(config.domain)

    @property
    def source(self) -> str:
        return f"regex-{self.name}"

    @abstractmethod
    def detect(self, text: str) -> bool:
        """Return True if the text looks like this extractor's document shape."""

    @abstractmethod
    def scan(self, text: str, course: str) -> ExtractionResult:
        """Run the primary scan over normalized text."""

    def extract(self, text: str, course: Optional[str] = None) -> List[Assignment]:
        """Extract candidate assignments from normalized text."""
        return self.run(text, course).assignments

    def run(self, text: str, course: Optional[str] = None) -> ExtractionResult:
        """Scan, recover missed items, then clean and sort.

        Args:
            text: Normalized document text
            course: Course identifier ("unknown" when absent)

        Returns:
            ExtractionResult
        """
        course = course or UNKNOWN_COURSE
        result = self.scan(text, course)
        recovered = self.recover_missed(text, result.assignments, course)
        if recovered:
            logger.info("%s recovery sweep found %d more item(s)", self.name, len(recovered))
        result.assignments = sort_and_clean(result.assignments + recovered)
        return result

    def make_assignment(self, text: str, course: str, confidence: float,
                        type_: Optional[str] = None, points: Optional[int] = None,
                        resolved: Optional[date] = None, due_time: Optional[str] = None,
                        extracted_from: Optional[str] = None, line_index: Optional[int] = None,
                        week: Optional[int] = None, module: Optional[int] = None,
                        source: Optional[str] = None) -> Assignment:
        """Build a candidate with inferred type and hours."""
        text = ' '.join(text.split())
        assignment_type = type_ or self.config.determine_type(text)
        return Assignment(
            id=new_assignment_id(self.name),
            text=text,
            date=resolved.isoformat() if resolved else None,
            type=assignment_type,
            hours=clamp_hours(self.config.estimate_hours(assignment_type, text)),
            points=points,
            course=course,
            confidence=clamp_confidence(confidence),
            source=source or self.source,
            week=week,
            module=module,
            due_time=due_time,
            extracted_from=extracted_from,
            line_index=line_index,
        )

    def match_line(self, line: str, course: str, line_index: Optional[int] = None,
                   fallback_date: Optional[date] = None, week: Optional[int] = None,
                   module: Optional[int] = None) -> Optional[Assignment]:
        """Apply the ordered rules to a single line. First match wins.

        Args:
            line: Normalized line
            course: Course identifier
            line_index: Line position for ordering
            fallback_date: Contextual date used when the line has none
            week: Week number in effect
            module: Module number in effect

        Returns:
            Assignment or None if no rule matched
        """
        stripped = line.strip()
        if (len(stripped) <= MIN_TEXT_LENGTH or len(stripped) > MAX_LINE_LENGTH
                or SECTION_WORDS.match(stripped) or WEIGHT_LINE.match(stripped)
                or stripped.endswith(":")):
            return None

        for rule in self.rules:
            match = rule.pattern.search(stripped)
            if not match:
                continue
            text = rule.build(match) if rule.build else clean_title(stripped)
            if len(text) <= MIN_TEXT_LENGTH:
                continue
            if rule.name == 'bullet' and len(text.split()) < 2:
                continue
            points = extract_points(stripped)
            if points is None:
                points = rule.default_points
            return self.make_assignment(
                text, course, rule.confidence,
                type_=rule.type,
                points=points,
                resolved=self.resolver.find_date(stripped) or fallback_date,
                due_time=extract_due_time(stripped),
                extracted_from=stripped,
                line_index=line_index,
                week=week,
                module=module,
            )
        return None

    RECOVERY_PATTERNS = [
        # Quiz title and points split across two lines
        re.compile(r'Quiz\s+\d+[^(\n]+\n[^(\n]+\(\d+\s*points?[^)]*\)', re.IGNORECASE),
        # "Complete the following:" with the task on the next line
        re.compile(r'(?:Complete|Submit|Due)[^:\n]+:\s*\n\s*([^\n]+)', re.IGNORECASE),
    ]

    def recover_missed(self, text: str, found: List[Assignment], course: str) -> List[Assignment]:
        """Broader sweep over the whole text for multi-line items the scan skipped.

        A recovered item is dropped when the first 20 characters of its text
        appear in an already-found item (or the other way round).
        """
        recovered: List[Assignment] = []
        found_texts = [a.text.lower() for a in found]

        for pattern in self.RECOVERY_PATTERNS:
            for match in pattern.finditer(text):
                raw = match.group(1) if pattern.groups else match.group(0)
                candidate_text = clean_title(' '.join(raw.split()))
                if len(candidate_text) <= MIN_TEXT_LENGTH:
                    continue
                prefix = candidate_text.lower()[:20]
                if any(prefix in t or t[:20] in candidate_text.lower() for t in found_texts):
                    continue
                assignment = self.make_assignment(
                    candidate_text, course, RECOVERY_CONFIDENCE,
                    points=extract_points(match.group(0)),
                    resolved=self.resolver.find_date(match.group(0)),
                    due_time=extract_due_time(match.group(0)),
                    extracted_from=match.group(0),
                    line_index=text.count('\n', 0, match.start()),
                    source=f"{self.source}-recovery",
                )
                if not is_duplicate(assignment, recovered):
                    recovered.append(assignment)
                    found_texts.append(assignment.text.lower())
        return recovered


def sort_and_clean(assignments: List[Assignment]) -> List[Assignment]:
    """Drop too-short records and sort by date, then by line position.

    Undated records sort after dated ones.
    """
    kept = [a for a in assignments if a.text and len(a.text.strip()) > MIN_TEXT_LENGTH]
    return sorted(kept, key=lambda a: (a.date is None, a.date or "",
                                       a.line_index if a.line_index is not None else -1))
