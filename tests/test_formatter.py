"""Unit tests for display formatting."""

from studiora.formatter import clean_display_text, format_all, format_for_display
from studiora.models import Assignment


def test_quiz_display():
    """Test verb, priority, clean text and course prefix for a quiz."""
    item = format_for_display(Assignment(
        text="Quiz: Chapter 5 Review (due May 12)", type="quiz", course="nurs301"))
    assert item.action_verb == "QUIZ"
    assert item.priority == "MEDIUM"
    assert item.clean_text == "Chapter 5 Review"
    assert item.course_prefix == "NURS301"
    assert item.display_title == "QUIZ: Chapter 5 Review"
    assert item.full_title == "NURS301 - QUIZ: Chapter 5 Review"


def test_priorities_by_type():
    """Test high, low and default priorities."""
    assert format_for_display(Assignment(text="Midterm", type="exam")).priority == "HIGH"
    assert format_for_display(Assignment(text="Shift at General", type="clinical")).action_verb == "ATTEND"
    assert format_for_display(Assignment(text="Read Chapter 3", type="reading")).priority == "LOW"
    unknown = format_for_display(Assignment(text="Lab 2: Titration", type="lab"))
    assert unknown.action_verb == "DO"
    assert unknown.priority == "MEDIUM"


def test_unknown_course_has_no_prefix():
    """Test the full title omits an unknown course."""
    item = format_for_display(Assignment(text="Read Chapter 3", type="reading"))
    assert item.course_prefix == ""
    assert item.full_title == item.display_title == "READ: Read Chapter 3"


def test_clean_display_text():
    """Test only a leading type word is stripped."""
    assert clean_display_text("Reading: Chapter 4") == "Chapter 4"
    assert clean_display_text("Final reading list") == "Final reading list"


def test_to_dict_and_format_all():
    """Test dict output carries both record and display fields."""
    items = format_all([Assignment(text="Watch the ECG video", type="video", course="nurs301")])
    data = items[0].to_dict()
    assert data["action_verb"] == "WATCH"
    assert data["text"] == "Watch the ECG video"
    assert "extracted_from" not in data
