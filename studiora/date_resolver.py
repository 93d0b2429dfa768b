"""
Date resolution for assignment text.

Turns heterogeneous date expressions ("May 12", "5/12", "Thursday, August 7",
"next week") into calendar dates. A miss is not an error: every resolver
method returns None when nothing can be resolved.

Also detects date and week headings and computes how far their contextual
scope runs in a list of lines.
"""

import logging
import re
from datetime import date, timedelta
from typing import List, Optional, Tuple

import dateparser

logger = logging.getLogger(__name__)

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
FRIDAY = 4

MONTH = (r'(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|'
         r'aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)')
WEEKDAY = r'(?:mon|tue|tues|wed|thu|thur|thurs|fri|sat|sun)(?:day|nesday|sday|urday)?'

MONTH_DAY = re.compile(
    r'\b(' + MONTH + r')\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b(?:,?\s*(\d{4}))?',
    re.IGNORECASE,
)
NUMERIC_DATE = re.compile(r'\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b')
ISO_DATE = re.compile(r'\b\d{4}-\d{2}-\d{2}\b')
NUMERIC_DATE_FULL = re.compile(r'^(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?$')
LEADING_WEEKDAY = re.compile(r'^' + WEEKDAY + r'\b[,.]?\s+', re.IGNORECASE)
RELATIVE = re.compile(
    r'\b(today|tomorrow|next week|this week|end of (?:the )?week|'
    r'monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b',
    re.IGNORECASE,
)
DUE_RELATIVE = re.compile(
    r'\b(?:due|by)\s+(?:on\s+|by\s+)?(?:the\s+)?(today|tomorrow|next week|this week|'
    r'end of (?:the )?week|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b',
    re.IGNORECASE,
)

WEEK_HEADER = re.compile(r'^(week|module)\s+(\d+)\b', re.IGNORECASE)
DATE_HEADER_PATTERNS = [
    re.compile(r'^\*+\s*\w+,?\s+\w+\s+\d+'),     # ** Monday May 12
    re.compile(r'^\w+,?\s+\w+\s+\d+\s*[-:]'),    # Monday, May 12:
    re.compile(r'^\w+\s+\d+\s*:'),               # May 12:
    re.compile(r'^\*+\s*\w+\s+\d+\s*\*+'),       # **May 12**
    re.compile(r'^#{1,4}\s*\w+,?\s+\w+\s*\d+'),  # ## Monday May 12
]


def _parse_mdy(expression: str) -> Optional[date]:
    parsed = dateparser.parse(
        expression,
        languages=["en"],
        settings={"DATE_ORDER": "MDY", "STRICT_PARSING": True},
    )
    return parsed.date() if parsed else None


class DateResolver:
    """Resolves date expressions against a default year and a fixed "today"."""

    def __init__(self, default_year: Optional[int] = None, today: Optional[date] = None,
                 semester_start: Optional[date] = None, semester_end: Optional[date] = None):
        """Initialize the resolver.

        Args:
            default_year: Year used when an expression has none (defaults to today's year)
            today: Reference date for relative expressions (defaults to date.today())
            semester_start: Optional semester start, used for week-derived dates
            semester_end: Optional semester end, used for bound warnings
        """
        self.today = today or date.today()
        self.default_year = default_year or self.today.year
        self.semester_start = semester_start
        self.semester_end = semester_end

    def resolve(self, expression: Optional[str]) -> Optional[date]:
        """Resolve a date expression.

        Tried in order: ``Month Day[, Year]``, ISO or ``MM/DD[/YY|/YYYY]``, then
        relative expressions. A leading weekday token is stripped before
        absolute parsing ("Thursday, August 7" -> "August 7").

        Args:
            expression: Raw date text

        Returns:
            Resolved date, or None if the expression cannot be resolved
        """
        if not expression:
            return None

        cleaned = expression.strip().strip('()[]*#').strip()
        cleaned = re.sub(r'^due\s*:?\s*', '', cleaned, flags=re.IGNORECASE)
        cleaned = LEADING_WEEKDAY.sub('', cleaned).strip(' ,.')
        if not cleaned:
            cleaned = expression.strip()

        resolved = self._resolve_month_day(cleaned)
        if resolved is None:
            resolved = self._resolve_numeric(cleaned)
        if resolved is None:
            resolved = self.resolve_relative(expression)

        if resolved is not None:
            self._check_bounds(resolved, expression)
        return resolved

    def resolve_iso(self, expression: Optional[str]) -> Optional[str]:
        """Like ``resolve`` but returns an ISO string."""
        resolved = self.resolve(expression)
        return resolved.isoformat() if resolved else None

    def _resolve_month_day(self, text: str) -> Optional[date]:
        match = MONTH_DAY.search(text)
        if not match:
            return None
        month, day, year = match.group(1), match.group(2), match.group(3)
        year = year or str(self.default_year)
        return _parse_mdy(f"{month} {day} {year}")

    def _resolve_numeric(self, text: str) -> Optional[date]:
        iso = ISO_DATE.search(text)
        if iso:
            try:
                return date.fromisoformat(iso.group(0))
            except ValueError:
                return None
        match = NUMERIC_DATE_FULL.match(text) or NUMERIC_DATE.search(text)
        if not match:
            return None
        month, day = int(match.group(1)), int(match.group(2))
        year_text = match.group(3)
        if year_text:
            year = int(year_text) + 2000 if len(year_text) == 2 else int(year_text)
        else:
            year = self.default_year
        resolved = _parse_mdy(f"{month}/{day}/{year}")
        # dateparser may swap day and month when the month is out of range
        if resolved is None or resolved.month != month:
            return None
        return resolved

    def resolve_relative(self, expression: str) -> Optional[date]:
        """Resolve a relative expression against ``today``.

        Bare weekday names resolve to the next future occurrence (never
        today). "this week" and "end of week" resolve to the next Friday.
        """
        match = RELATIVE.search(expression or "")
        if not match:
            return None
        word = match.group(1).lower()

        if word == 'today':
            return self.today
        if word == 'tomorrow':
            return self.today + timedelta(days=1)
        if word == 'next week':
            return self.today + timedelta(days=7)
        if word == 'this week' or word.startswith('end of'):
            return self.today + timedelta(days=(FRIDAY - self.today.weekday()) % 7 or 7)

        target = WEEKDAYS.index(word)
        return self.today + timedelta(days=(target - self.today.weekday()) % 7 or 7)

    def week_date(self, week_number: int) -> Optional[date]:
        """Return the Friday of a numbered week counted from semester start."""
        if not self.semester_start or week_number < 1:
            return None
        week_start = self.semester_start + timedelta(weeks=week_number - 1)
        return week_start + timedelta(days=(FRIDAY - week_start.weekday()) % 7)

    def find_date(self, text: str) -> Optional[date]:
        """Find and resolve the first date mentioned in a piece of text.

        Relative words only count when they follow "due" or "by", so a
        line that merely mentions a weekday does not acquire a date.
        """
        if not text:
            return None
        due = re.search(r'\bdue\s*:?\s*(?:on\s+|by\s+)?([^;|)]+)', text, re.IGNORECASE)
        if due:
            resolved = self.resolve_absolute(due.group(1))
            if resolved:
                return resolved
        resolved = self.resolve_absolute(text)
        if resolved:
            return resolved
        relative = DUE_RELATIVE.search(text)
        if relative:
            return self.resolve(relative.group(1))
        return None

    def resolve_absolute(self, text: str) -> Optional[date]:
        match = MONTH_DAY.search(text)
        if match:
            resolved = self._resolve_month_day(match.group(0))
            if resolved:
                self._check_bounds(resolved, match.group(0))
                return resolved
        match = ISO_DATE.search(text) or NUMERIC_DATE.search(text)
        if match:
            resolved = self._resolve_numeric(match.group(0))
            if resolved:
                self._check_bounds(resolved, match.group(0))
                return resolved
        return None

    def _check_bounds(self, resolved: date, expression: str) -> None:
        if self.semester_start and resolved < self.semester_start:
            logger.warning("Date %s from %r falls before semester start %s",
                           resolved, expression, self.semester_start)
        elif self.semester_end and resolved > self.semester_end:
            logger.warning("Date %s from %r falls after semester end %s",
                           resolved, expression, self.semester_end)


def is_week_header(line: str) -> bool:
    """Return True for lines such as "Week 3" or "Module 2: Cardiac Care"."""
    return bool(WEEK_HEADER.match(line.strip()))


def split_header(line: str, resolver: DateResolver) -> Tuple[Optional[date], str, str]:
    """Split a line into its date heading and the text that follows it.

    Only the matched heading prefix is resolved, so "Quiz 3: ... Due: May 12"
    is not a heading even though the line contains a date.

    Returns:
        (heading date or None, heading prefix, trailing text)
    """
    stripped = line.strip()
    for pattern in DATE_HEADER_PATTERNS:
        match = pattern.match(stripped)
        if match:
            resolved = resolver.resolve_absolute(match.group(0))
            if resolved:
                rest = stripped[match.end():].strip(' *#:-')
                return resolved, match.group(0), rest
    return None, "", stripped


def header_date(line: str, resolver: DateResolver) -> Optional[date]:
    """Resolve the date carried by the heading part of a line, if any."""
    return split_header(line, resolver)[0]


def is_date_header(lines: List[str], index: int, resolver: DateResolver) -> bool:
    """Check whether ``lines[index]`` is a date heading.

    A date heading matches one of the heading shapes, carries a resolvable
    date, and either has content on the next line or ends its date with ':'.
    """
    line = lines[index].strip()
    if not line or is_week_header(line):
        return False
    if header_date(line, resolver) is None:
        return False
    has_content_below = index + 1 < len(lines) and lines[index + 1].strip() != ""
    return has_content_below or ':' in line


def date_scope_end(lines: List[str], start: int, resolver: DateResolver) -> int:
    """Find the exclusive end index of the scope opened by the header at ``start``.

    The scope runs until the next week or date header, or until a blank
    line that is immediately followed by a date header.
    """
    end = start + 1
    while end < len(lines):
        line = lines[end].strip()
        if not line and end + 1 < len(lines) and (
                is_date_header(lines, end + 1, resolver) or is_week_header(lines[end + 1])):
            break
        if line and (is_week_header(line) or is_date_header(lines, end, resolver)):
            break
        end += 1
    return end
