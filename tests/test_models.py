"""Unit tests for data models."""

import json

from studiora.models import (
    Assignment, Module, ParseResult, StageMetadata,
    DEFAULT_HOURS, MAX_CONFIDENCE, MAX_HOURS, MIN_CONFIDENCE, MIN_HOURS,
    assignment_to_dict, clamp_confidence, clamp_hours, new_assignment_id,
    parse_result_to_dict,
)


def test_assignment_defaults():
    """Test Assignment model defaults."""
    assignment = Assignment(text="Read Chapter 4")
    assert assignment.type == "assignment"
    assert assignment.course == "unknown"
    assert assignment.date is None
    assert assignment.hours == DEFAULT_HOURS
    assert assignment.validated is False
    assert assignment.id


def test_assignment_ids_are_unique():
    """Test generated ids are opaque and unique."""
    ids = {new_assignment_id("regex") for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("regex_") for i in ids)


def test_module():
    """Test Module model."""
    module = Module(number=2, title="Cardiac Care", course="nurs301")
    assert module.number == 2
    assert module.chapters == []
    assert module.assignment_ids == []


def test_clamp_hours():
    """Test hours are kept within bounds."""
    assert clamp_hours(20) == MAX_HOURS
    assert clamp_hours(0.1) == MIN_HOURS
    assert clamp_hours(1.5) == 1.5
    assert clamp_hours(0) == DEFAULT_HOURS
    assert clamp_hours(None) == DEFAULT_HOURS


def test_clamp_confidence():
    """Test confidence never reaches 0 or 1."""
    assert clamp_confidence(1.0) == MAX_CONFIDENCE
    assert clamp_confidence(0.0) == MIN_CONFIDENCE
    assert clamp_confidence(0.7) == 0.7


def test_stage_metadata_defaults():
    """Test AI stages start as skipped."""
    stages = StageMetadata()
    assert stages.ai_remainder == "skipped"
    assert stages.ai_validation == "skipped"


def test_assignment_to_dict_hides_internal_fields():
    """Test the source excerpt is not part of user-facing output."""
    assignment = Assignment(text="Quiz 3", extracted_from="Quiz 3 (25 pts)", line_index=4)
    data = assignment_to_dict(assignment)
    assert "extracted_from" not in data
    assert "line_index" not in data
    assert data["text"] == "Quiz 3"

    internal = assignment_to_dict(assignment, include_internal=True)
    assert internal["extracted_from"] == "Quiz 3 (25 pts)"


def test_parse_result_to_dict_is_json_serializable():
    """Test a full result converts to JSON."""
    result = ParseResult(
        assignments=[Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12", points=25)],
        modules=[Module(number=1, title="Foundations")],
    )
    data = json.loads(json.dumps(parse_result_to_dict(result)))
    assert data["assignments"][0]["points"] == 25
    assert data["modules"][0]["title"] == "Foundations"
    assert data["metadata"]["method"] == "sequential-enhancement"
    assert data["metadata"]["stages"]["regex"] == "pending"
