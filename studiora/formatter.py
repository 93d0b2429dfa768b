"""
Display formatting for extracted assignments.

Turns an Assignment into the short action-oriented titles shown in task
lists, e.g. ``"NURS101 - QUIZ: 3: Chapter 5 Review"`` becomes readable as
"what to do" plus priority.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List

from .models import Assignment, UNKNOWN_COURSE, assignment_to_dict


ACTION_VERBS = {
    'reading': 'READ',
    'video': 'WATCH',
    'quiz': 'QUIZ',
    'exam': 'TEST',
    'assignment': 'DO',
    'discussion': 'DISCUSS',
    'clinical': 'ATTEND',
    'simulation': 'PRACTICE',
    'prep': 'STUDY',
    'preparation': 'STUDY',
    'activity': 'COMPLETE',
    'remediation': 'REVIEW',
}
DEFAULT_VERB = 'DO'

PRIORITIES = {
    'exam': 'HIGH',
    'quiz': 'MEDIUM',
    'clinical': 'HIGH',
    'assignment': 'MEDIUM',
    'reading': 'LOW',
    'video': 'LOW',
}
DEFAULT_PRIORITY = 'MEDIUM'

LEADING_TYPE = re.compile(r'^(assignment|quiz|exam|reading|video|discussion)[\s:]+', re.IGNORECASE)
DUE_PAREN = re.compile(r'\s*\(due[^)]*\)', re.IGNORECASE)


@dataclass
class DisplayAssignment:
    """Presentation fields derived from one Assignment."""
    assignment: Assignment
    action_verb: str
    priority: str           # HIGH, MEDIUM or LOW
    clean_text: str
    course_prefix: str      # Upper-cased course, empty when unknown
    display_title: str
    full_title: str

    def to_dict(self) -> Dict[str, Any]:
        data = assignment_to_dict(self.assignment)
        data.update({
            'action_verb': self.action_verb,
            'priority': self.priority,
            'clean_text': self.clean_text,
            'course_prefix': self.course_prefix,
            'display_title': self.display_title,
            'full_title': self.full_title,
        })
        return data


def clean_display_text(text: str) -> str:
    """Strip a leading type word and any "(due ...)" note."""
    cleaned = LEADING_TYPE.sub('', text)
    cleaned = DUE_PAREN.sub('', cleaned)
    return cleaned.strip()


def format_for_display(assignment: Assignment) -> DisplayAssignment:
    action_verb = ACTION_VERBS.get(assignment.type, DEFAULT_VERB)
    priority = PRIORITIES.get(assignment.type, DEFAULT_PRIORITY)
    clean_text = clean_display_text(assignment.text)

    course_prefix = ''
    if assignment.course and assignment.course != UNKNOWN_COURSE:
        course_prefix = assignment.course.upper()

    display_title = f"{action_verb}: {clean_text}"
    full_title = f"{course_prefix} - {display_title}" if course_prefix else display_title

    return DisplayAssignment(
        assignment=assignment,
        action_verb=action_verb,
        priority=priority,
        clean_text=clean_text,
        course_prefix=course_prefix,
        display_title=display_title,
        full_title=full_title,
    )


def format_all(assignments: List[Assignment]) -> List[DisplayAssignment]:
    return [format_for_display(a) for a in assignments]
