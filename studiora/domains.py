"""
Domain Configuration Registry

Maps a course (by name and document text) to an educational domain profile:
keyword vocabulary, ordered type-detection patterns and hour estimates.
Profiles are immutable and shared; ``build_config`` returns a fresh merged
view per parse call.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Pattern, Tuple

from .exceptions import ConfigurationError
from .models import DEFAULT_HOURS, MAX_HOURS, MIN_HOURS

logger = logging.getLogger(__name__)

DOMAIN_SCORE_THRESHOLD = 5

TypePatterns = Tuple[Tuple[str, Pattern], ...]


class Domain(Enum):
    """Known educational domains."""
    NURSING = "nursing"
    ENGINEERING = "engineering"
    BUSINESS = "business"
    HUMANITIES = "humanities"
    SCIENCES = "sciences"
    MATHEMATICS = "mathematics"
    DEFAULT = "default"


@dataclass(frozen=True)
class DomainProfile:
    """Immutable vocabulary bundle for one domain."""
    name: str                           # Display name, e.g. "Nursing/Medical"
    keywords: Tuple[str, ...]           # Lowercase keywords used for detection
    hour_estimates: Mapping[str, float] # type -> hours
    patterns: TypePatterns              # Ordered (type, regex); first match wins


def _profile(name: str, keywords: List[str], hours: Dict[str, float],
             patterns: List[Tuple[str, str]]) -> DomainProfile:
    return DomainProfile(
        name=name,
        keywords=tuple(keywords),
        hour_estimates=MappingProxyType(dict(hours)),
        patterns=tuple((t, re.compile(p, re.IGNORECASE)) for t, p in patterns),
    )


_PROFILES: Dict[Domain, DomainProfile] = {
    Domain.NURSING: _profile(
        "Nursing/Medical",
        [
            'clinical', 'simulation', 'patient', 'nursing', 'medical', 'health',
            'hospital', 'rotation', 'rounds', 'shift', 'practicum',
            'hesi', 'nclex', 'ati', 'kaplan', 'dosage', 'calculation',
            'medication', 'pharmacology', 'pathophysiology', 'anatomy',
            'remediation', 'case study', 'care plan', 'concept map',
            'skills lab', 'check-off', 'competency', 'injection',
            'fundamentals', 'med-surg', 'pediatrics', 'maternity', 'psych',
            'community health', 'leadership', 'gerontology',
        ],
        {
            'clinical': 8, 'simulation': 4, 'lab': 3, 'exam': 3, 'quiz': 1.5,
            'nclex-prep': 2, 'remediation': 2, 'case-study': 1.5,
            'care-plan': 2, 'check-off': 1, 'reflection': 0.5,
        },
        [
            ('clinical', r'\b(clinical|rotation|shift|hospital)\b'),
            ('simulation', r'\b(sim|simulation|high-fidelity)\b'),
            ('exam', r'\b(hesi|nclex|ati|kaplan|exam|test)\b'),
            ('lab', r'\b(skills?\s*lab|check-?off|competency|demonstration)\b'),
            ('remediation', r'\b(remediation|review|make-?up)\b'),
        ],
    ),
    Domain.ENGINEERING: _profile(
        "Computer Science/Engineering",
        [
            'code', 'programming', 'algorithm', 'debug', 'compile', 'deploy',
            'repository', 'git', 'github', 'commit', 'branch', 'merge',
            'lab', 'project', 'sprint', 'milestone', 'demo', 'presentation',
            'hackathon', 'competition', 'implementation', 'prototype',
            'data structure', 'database', 'api', 'frontend', 'backend',
            'full-stack', 'machine learning', 'neural network',
            'code review', 'peer review', 'unit test', 'integration test',
            'documentation', 'readme', 'specification', 'design document',
        ],
        {
            'lab': 3, 'project': 8, 'programming-assignment': 4, 'code-review': 1,
            'sprint': 20, 'hackathon': 12, 'demo': 0.5, 'documentation': 2,
            'debugging': 3, 'exam': 2,
        },
        [
            ('lab', r'\b(lab|laboratory)\s*\d*\b'),
            ('project', r'\b(project|sprint|milestone)\b'),
            ('programming-assignment', r'\b(code|program|implement|develop)\b'),
            ('code-review', r'\b(review|peer|feedback)\b'),
            ('exam', r'\b(test|exam|quiz|midterm|final)\b'),
        ],
    ),
    Domain.BUSINESS: _profile(
        "Business/MBA",
        [
            'case study', 'case analysis', 'harvard case', 'business case',
            'business plan', 'marketing plan', 'financial analysis',
            'swot analysis', 'presentation', 'pitch', 'proposal',
            'strategy', 'consulting', 'management', 'finance', 'marketing',
            'operations', 'supply chain', 'entrepreneurship', 'venture',
            'simulation', 'team project', 'group work', 'client project',
            'field study', 'internship', 'networking event',
        ],
        {
            'case-study': 3, 'business-plan': 10, 'presentation': 2,
            'project': 6, 'simulation': 2, 'analysis': 3, 'reading': 2,
            'networking': 2, 'exam': 3,
        },
        [
            ('case-study', r'\b(case\s*study|case\s*analysis|harvard\s*case)\b'),
            ('presentation', r'\b(presentation|pitch|present)\b'),
            ('project', r'\b(project|plan|proposal)\b'),
            ('analysis', r'\b(analysis|analyze|evaluate)\b'),
        ],
    ),
    Domain.HUMANITIES: _profile(
        "Liberal Arts/Humanities",
        [
            'essay', 'paper', 'thesis', 'dissertation', 'response',
            'reflection', 'journal', 'blog', 'article', 'critique',
            'reading', 'chapter', 'book', 'text', 'literature',
            'discussion', 'seminar', 'workshop', 'conference', 'symposium',
            'debate', 'presentation', 'performance', 'exhibition',
            'research', 'fieldwork', 'interview', 'survey', 'analysis',
        ],
        {
            'essay': 4, 'paper': 6, 'reading': 2, 'discussion': 1,
            'presentation': 2, 'research': 5, 'journal': 1, 'response': 1,
            'exam': 2,
        },
        [
            ('essay', r'\b(essay|paper|write|writing|response)\b'),
            ('reading', r'\b(read|reading|chapter|pages?)\b'),
            ('discussion', r'\b(discussion|discuss|seminar|forum)\b'),
            ('research', r'\b(research|fieldwork|study)\b'),
        ],
    ),
    Domain.SCIENCES: _profile(
        "Natural Sciences",
        [
            'lab', 'experiment', 'protocol', 'procedure', 'observation',
            'data collection', 'analysis', 'results', 'conclusion',
            'lab report', 'research paper', 'poster', 'abstract',
            'hypothesis', 'methodology', 'equipment', 'safety',
            'chemical', 'reaction', 'specimen', 'sample', 'culture',
            'field trip', 'field work', 'collection', 'dissection',
        ],
        {
            'lab': 4, 'lab-report': 3, 'experiment': 3, 'field-work': 5,
            'data-analysis': 2, 'poster': 4, 'research': 5, 'exam': 2,
        },
        [
            ('lab', r'\b(lab|laboratory|experiment)\b'),
            ('lab-report', r'\b(report|write-?up|analysis)\b'),
            ('field-work', r'\b(field|collection|observation)\b'),
        ],
    ),
    Domain.MATHEMATICS: _profile(
        "Mathematics/Statistics",
        [
            'problem set', 'homework', 'proof', 'derivation', 'calculation',
            'theorem', 'lemma', 'equation', 'formula', 'matrix', 'vector',
            'statistics', 'probability', 'analysis', 'calculus', 'algebra',
            'workshop', 'tutorial', 'review session', 'practice problems',
        ],
        {
            'problem-set': 3, 'homework': 2, 'proof': 2, 'exam': 2,
            'quiz': 1, 'tutorial': 1, 'workshop': 2,
        },
        [
            ('homework', r'\b(homework|hw|problem\s*set|pset)\b'),
            ('proof', r'\b(proof|prove|derivation|derive)\b'),
            ('tutorial', r'\b(practice|tutorial|workshop)\b'),
        ],
    ),
    Domain.DEFAULT: _profile(
        "General Education",
        [
            'assignment', 'homework', 'quiz', 'exam', 'test', 'midterm', 'final',
            'project', 'presentation', 'paper', 'essay', 'report',
            'reading', 'chapter', 'discussion', 'forum', 'post',
            'lab', 'activity', 'exercise', 'workshop', 'review',
        ],
        {
            'assignment': 2, 'homework': 2, 'quiz': 1, 'exam': 2, 'project': 4,
            'paper': 3, 'reading': 2, 'discussion': 1, 'lab': 3, 'activity': 1,
            'video': 0.5, 'clinical': 8, 'case-study': 2, 'preparation': 1,
            'simulation': 2, 'presentation': 2,
        },
        [
            ('assignment', r'\b(assignment|homework|hw)\b'),
            ('quiz', r'\bquiz(zes)?\b'),
            ('exam', r'\b(exam|test|midterm|final)\b'),
            ('project', r'\b(project|presentation)\b'),
            ('paper', r'\b(paper|essay|report|write)\b'),
            ('reading', r'\b(read|chapters?)\b'),
            ('discussion', r'\b(discussion|forum)\b'),
            ('video', r'\b(video|watch)\b'),
        ],
    ),
}

_missing = set(Domain) - set(_PROFILES)
if _missing:
    raise ConfigurationError(f"No profile registered for domains: {sorted(d.value for d in _missing)}")


def get_profile(domain: Domain) -> DomainProfile:
    """Return the immutable profile for a domain."""
    return _PROFILES[domain]


@dataclass
class DomainOverrides:
    """Caller-supplied additions merged on top of a domain profile."""
    additional_keywords: List[str] = field(default_factory=list)
    hour_estimates: Dict[str, float] = field(default_factory=dict)
    patterns: Dict[str, str] = field(default_factory=dict)  # type -> regex source


@dataclass(frozen=True)
class ParserConfig:
    """Merged configuration for one parse call."""
    domain: Domain
    domain_name: str
    keywords: Tuple[str, ...]
    hour_estimates: Mapping[str, float]
    patterns: TypePatterns

    def determine_type(self, text: str) -> str:
        """Infer an assignment type using this config's patterns first."""
        return _match_type(text, self.patterns)

    def estimate_hours(self, assignment_type: str, text: Optional[str] = None) -> float:
        """Estimate effort using this config's hour table first."""
        base = self.hour_estimates.get(assignment_type)
        if base is None:
            base = _PROFILES[Domain.DEFAULT].hour_estimates.get(assignment_type, DEFAULT_HOURS)
        return _adjust_hours(base, text)


def _keyword_score(keyword: str, search_text: str) -> int:
    if re.search(r'\b' + re.escape(keyword) + r'\b', search_text):
        return len(keyword.split())
    return 0


def detect_domain(course_name: Optional[str], document_text: str = "") -> Domain:
    """Detect the domain for a course.

    Each keyword present in the course name or document text adds its word
    count to the domain's score. The best domain wins only if its score is
    above DOMAIN_SCORE_THRESHOLD.

    Args:
        course_name: Course name or code, may be None
        document_text: Document text

    Returns:
        Detected Domain (Domain.DEFAULT when nothing is significant)
    """
    search_text = f"{course_name or ''} {document_text}".lower()

    scores: List[Tuple[Domain, int]] = []
    for domain in Domain:
        if domain is Domain.DEFAULT:
            continue
        profile = _PROFILES[domain]
        scores.append((domain, sum(_keyword_score(k, search_text) for k in profile.keywords)))

    best_domain, best_score = max(scores, key=lambda item: item[1])
    if best_score > DOMAIN_SCORE_THRESHOLD:
        logger.debug("Detected domain %s (score %d)", best_domain.value, best_score)
        return best_domain
    return Domain.DEFAULT


def build_config(course_name: Optional[str], document_text: str = "",
                 overrides: Optional[DomainOverrides] = None,
                 domain: Optional[Domain] = None) -> ParserConfig:
    """Build the merged parser configuration for one parse call.

    Overrides always win over domain defaults. Override patterns are tried
    before the domain's own patterns.

    Args:
        course_name: Course name or code
        document_text: Document text used for detection
        overrides: Optional caller additions
        domain: Force a domain instead of detecting one

    Returns:
        ParserConfig

    Raises:
        ConfigurationError: If an override pattern is not a valid regex
    """
    if domain is None:
        domain = detect_domain(course_name, document_text)
    profile = _PROFILES[domain]
    overrides = overrides or DomainOverrides()

    hours = dict(profile.hour_estimates)
    hours.update(overrides.hour_estimates)

    override_patterns = []
    for type_name, source in overrides.patterns.items():
        try:
            override_patterns.append((type_name, re.compile(source, re.IGNORECASE)))
        except re.error as e:
            raise ConfigurationError(f"Invalid pattern for type '{type_name}': {e}") from e
    overridden = {t for t, _ in override_patterns}
    patterns = tuple(override_patterns) + tuple(
        (t, p) for t, p in profile.patterns if t not in overridden
    )

    return ParserConfig(
        domain=domain,
        domain_name=profile.name,
        keywords=profile.keywords + tuple(k.lower() for k in overrides.additional_keywords),
        hour_estimates=MappingProxyType(hours),
        patterns=patterns,
    )


def _match_type(text: str, patterns: TypePatterns) -> str:
    for type_name, pattern in patterns:
        if pattern.search(text):
            return type_name
    for type_name, pattern in _PROFILES[Domain.DEFAULT].patterns:
        if pattern.search(text):
            return type_name
    return "assignment"


def determine_type(text: str, domain: Domain = Domain.DEFAULT) -> str:
    """Infer an assignment type.

    Domain patterns are tried first, then the default vocabulary, else
    ``"assignment"``.
    """
    return _match_type(text, _PROFILES[domain].patterns)


def estimate_hours(assignment_type: str, domain: Domain = Domain.DEFAULT,
                   text: Optional[str] = None) -> float:
    """Estimate hours of effort for an assignment type.

    Looks up the domain table, then the default table, else DEFAULT_HOURS.
    When text is given, chapter and page ranges raise the estimate and
    "comprehensive/final/major" scales it up. Always within
    [MIN_HOURS, MAX_HOURS].
    """
    base = _PROFILES[domain].hour_estimates.get(assignment_type)
    if base is None:
        base = _PROFILES[Domain.DEFAULT].hour_estimates.get(assignment_type, DEFAULT_HOURS)
    return _adjust_hours(base, text)


CHAPTER_RANGE = re.compile(r'\bchapters?\s*(\d+)\s*-\s*(\d+)', re.IGNORECASE)
PAGE_RANGE = re.compile(r'\b(?:pages?|pp\.?)\s*(\d+)\s*-\s*(\d+)', re.IGNORECASE)
MAJOR_WORK = re.compile(r'\b(comprehensive|final|major)\b', re.IGNORECASE)


def _adjust_hours(hours: float, text: Optional[str]) -> float:
    if text:
        chapters = CHAPTER_RANGE.search(text)
        if chapters:
            count = int(chapters.group(2)) - int(chapters.group(1)) + 1
            if count > 0:
                hours = max(hours, count * 0.5)
        pages = PAGE_RANGE.search(text)
        if pages:
            count = int(pages.group(2)) - int(pages.group(1)) + 1
            if count > 0:
                hours = max(hours, count * 0.1)
        if MAJOR_WORK.search(text):
            hours *= 1.5
    return max(MIN_HOURS, min(MAX_HOURS, hours))
