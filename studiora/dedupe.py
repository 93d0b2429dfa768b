"""
Duplicate detection and merging for assignment records.

Two records are duplicates when their normalized text is identical, or when
their dates are equal and their word overlap exceeds SIMILARITY_THRESHOLD.
On collision the record with strictly more informative fields is kept;
ties keep the earlier record.
"""

import logging
import re
from typing import List, Sequence

from .models import Assignment

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
VALIDATED_CONFIDENCE = 0.8


def normalize_for_compare(text: str) -> str:
    """Normalize text for comparison."""
    norm = (text or "").lower()
    norm = re.sub(r'[^\w\s]', ' ', norm)
    return ' '.join(norm.split())


def similarity(text1: str, text2: str) -> float:
    """Word-overlap similarity: |common words| / max(|words1|, |words2|)."""
    words1 = set(normalize_for_compare(text1).split())
    words2 = set(normalize_for_compare(text2).split())
    if not words1 or not words2:
        return 0.0
    return len(words1 & words2) / max(len(words1), len(words2))


def is_same_assignment(a: Assignment, b: Assignment) -> bool:
    """Apply the duplicate rule to a pair of records.

    Two undated records count as having equal dates.
    """
    if normalize_for_compare(a.text) == normalize_for_compare(b.text):
        return True
    return a.date == b.date and similarity(a.text, b.text) > SIMILARITY_THRESHOLD


def is_duplicate(candidate: Assignment, existing: Sequence[Assignment]) -> bool:
    """Check whether a candidate duplicates any record already collected."""
    return any(is_same_assignment(candidate, other) for other in existing)


def info_score(assignment: Assignment) -> int:
    """Count informative fields used to choose between duplicates."""
    score = 0
    if assignment.date:
        score += 1
    if assignment.points is not None:
        score += 1
    if assignment.due_time:
        score += 1
    validation_confidence = assignment.validation_confidence
    if validation_confidence is None:
        validation_confidence = assignment.confidence
    if assignment.validated and validation_confidence > VALIDATED_CONFIDENCE:
        score += 2
    return score


def has_more_info(new: Assignment, existing: Assignment) -> bool:
    """Return True only if ``new`` is strictly more informative than ``existing``."""
    return info_score(new) > info_score(existing)


def _dedupe_pass(assignments: Sequence[Assignment]) -> List[Assignment]:
    kept: List[Assignment] = []
    for assignment in assignments:
        for idx, existing in enumerate(kept):
            if is_same_assignment(assignment, existing):
                if has_more_info(assignment, existing):
                    kept[idx] = assignment
                break
        else:
            kept.append(assignment)
    return kept


def dedupe(assignments: Sequence[Assignment]) -> List[Assignment]:
    """Collapse duplicate records.

    Passes repeat until one completes without merging anything, so the
    output never contains a duplicate pair and ``dedupe(dedupe(x)) == dedupe(x)``.

    Args:
        assignments: Records in priority order (earlier wins ties)

    Returns:
        New list of unique records
    """
    current = list(assignments)
    while True:
        merged = _dedupe_pass(current)
        if len(merged) == len(current):
            break
        current = merged
    removed = len(assignments) - len(merged)
    if removed:
        logger.debug("Deduplication removed %d record(s)", removed)
    return merged
