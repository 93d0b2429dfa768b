"""Unit tests for duplicate detection and merging."""

from studiora.dedupe import dedupe, has_more_info, is_duplicate, is_same_assignment, similarity
from studiora.models import Assignment


def test_similarity():
    """Test word-overlap similarity."""
    assert similarity("Read Chapter 5", "read chapter 5") == 1.0
    assert similarity("Read Chapter 5", "Watch video") == 0.0
    assert similarity("", "anything") == 0.0


def test_reworded_duplicates_merge():
    """Test reworded records with the same date collapse to one."""
    first = Assignment(text="Complete Care Plan for Module 2", date="2025-06-01")
    second = Assignment(text="Care Plan Module 2 Complete", date="2025-06-01")
    assert is_same_assignment(first, second)

    merged = dedupe([first, second])
    assert len(merged) == 1
    assert merged[0].id == first.id


def test_different_dates_do_not_merge():
    """Test similar text with different dates stays separate."""
    first = Assignment(text="Care Plan Module 2 Complete", date="2025-06-01")
    second = Assignment(text="Complete Care Plan for Module 2", date="2025-06-08")
    assert len(dedupe([first, second])) == 2


def test_identical_text_merges_regardless_of_date():
    """Test identical normalized text is a duplicate even without dates."""
    first = Assignment(text="Quiz 3: Chapter 5 Review")
    second = Assignment(text="quiz 3 - chapter 5 review", date="2025-05-12")
    assert is_duplicate(second, [first])


def test_more_informative_record_wins():
    """Test the record with more fields replaces the earlier one."""
    plain = Assignment(text="Quiz 3: Chapter 5 Review")
    detailed = Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12", points=25)
    assert has_more_info(detailed, plain)

    merged = dedupe([plain, detailed])
    assert len(merged) == 1
    assert merged[0].id == detailed.id


def test_tie_keeps_earlier_record():
    """Test equally informative duplicates keep the first record."""
    first = Assignment(text="Read Chapter 4", date="2025-05-01")
    second = Assignment(text="read chapter 4", date="2025-05-01")
    assert not has_more_info(second, first)
    assert dedupe([first, second])[0].id == first.id


def test_validated_record_is_preferred():
    """Test a confidently validated record outranks an unvalidated one."""
    regex = Assignment(text="Care plan draft", date="2025-05-20", points=20)
    validated = Assignment(text="Care plan draft", date="2025-05-20",
                           validated=True, validation_confidence=0.9)
    assert dedupe([regex, validated])[0].id == validated.id


def test_dedupe_is_idempotent():
    """Test dedupe(dedupe(x)) == dedupe(x)."""
    records = [
        Assignment(text="Complete Care Plan for Module 2", date="2025-06-01"),
        Assignment(text="Care Plan Module 2 Complete", date="2025-06-01"),
        Assignment(text="Read Chapter 4 pages 10-20"),
        Assignment(text="read chapter 4 pages 10-20", points=5),
        Assignment(text="Quiz 1: Safety", date="2025-05-10"),
        Assignment(text="Discussion post on arrhythmias", date="2025-05-12"),
        Assignment(text="Discussion post on arrhythmias", date="2025-05-12", due_time="11:59PM"),
    ]
    once = dedupe(records)
    twice = dedupe(once)
    assert [a.id for a in twice] == [a.id for a in once]
    assert len(once) == 4

    for i, a in enumerate(once):
        for b in once[i + 1:]:
            assert not is_same_assignment(a, b)


def test_dedupe_does_not_mutate_input():
    """Test the input list is left untouched."""
    records = [Assignment(text="Quiz 1: Safety"), Assignment(text="quiz 1 safety")]
    dedupe(records)
    assert len(records) == 2
