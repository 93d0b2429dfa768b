"""
Schedule-style line scanner.

The scan is a fold over the document's lines: each step takes the current
``ScanContext`` and returns ``(new_context, candidates)``. Week and date
headings open a contextual date scope that applies to following lines
until the scope closes.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date
from typing import List, Optional, Tuple

from .date_resolver import date_scope_end, is_date_header, split_header
from .dedupe import is_duplicate
from .extractor_base import ASSIGNMENT_WORDS, Extractor, ExtractionResult, clean_title
from .models import Assignment, Module

logger = logging.getLogger(__name__)

WEEK_HEADER_FULL = re.compile(
    r'^(week|module)\s+(\d+)\s*(?:\(([^)]+)\))?\s*[:\-]?\s*(.*)$', re.IGNORECASE
)


@dataclass(frozen=True)
class ScanContext:
    """Immutable state threaded through the line scan."""
    week: Optional[int] = None
    module: Optional[int] = None
    scope_date: Optional[date] = None  # Date inherited by lines inside the scope
    scope_end: int = 0                 # Exclusive line index where the scope closes


class ScheduleExtractor(Extractor):
    """Scans schedule text line by line."""

    name = "schedule"

    SCHEDULE_INDICATORS = re.compile(
        r'^(week\s+\d+|monday|tuesday|wednesday|thursday|friday|schedule|calendar)\b',
        re.IGNORECASE | re.MULTILINE,
    )

    def detect(self, text: str) -> bool:
        return len(self.SCHEDULE_INDICATORS.findall(text)) >= 2

    def step(self, ctx: ScanContext, lines: List[str], index: int,
             course: str) -> Tuple[ScanContext, List[Assignment]]:
        """Process one line.

        Args:
            ctx: Context before this line
            lines: All normalized lines
            index: Line index to process
            course: Course identifier

        Returns:
            (context after this line, candidates emitted by this line)
        """
        if ctx.scope_date is not None and index >= ctx.scope_end:
            ctx = replace(ctx, scope_date=None)

        line = lines[index].strip()
        if not line:
            return ctx, []

        week_match = WEEK_HEADER_FULL.match(line)
        if week_match:
            return self._open_week_scope(ctx, lines, index, week_match), []

        if is_date_header(lines, index, self.resolver):
            heading_date, prefix, rest = split_header(line, self.resolver)
            ctx = replace(
                ctx,
                scope_date=heading_date,
                scope_end=date_scope_end(lines, index, self.resolver),
            )
            return ctx, self._match_heading(ctx, line, prefix, rest, index, course)

        candidate = self.match_line(
            line, course,
            line_index=index,
            fallback_date=ctx.scope_date,
            week=ctx.week,
            module=ctx.module,
        )
        return ctx, [candidate] if candidate else []

    def _match_heading(self, ctx: ScanContext, line: str, prefix: str, rest: str,
                       index: int, course: str) -> List[Assignment]:
        """Match the content sharing a line with a date heading.

        The text after the heading is tried first. The whole line is used
        only when the heading itself names an assignment ("Exam May 12 - ...").
        """
        candidate = None
        if rest:
            candidate = self.match_line(rest, course, line_index=index,
                                        fallback_date=ctx.scope_date,
                                        week=ctx.week, module=ctx.module)
        if candidate is None and ASSIGNMENT_WORDS.search(prefix):
            candidate = self.match_line(line, course, line_index=index,
                                        fallback_date=ctx.scope_date,
                                        week=ctx.week, module=ctx.module)
        return [candidate] if candidate else []

    def _open_week_scope(self, ctx: ScanContext, lines: List[str], index: int,
                         match: re.Match) -> ScanContext:
        kind, number = match.group(1).lower(), int(match.group(2))
        heading_date = (self.resolver.find_date(match.group(3) or "")
                        or self.resolver.find_date(match.group(4) or ""))
        if heading_date is None and kind == 'week':
            heading_date = self.resolver.week_date(number)
        return replace(
            ctx,
            week=number if kind == 'week' else ctx.week,
            module=number if kind == 'module' else ctx.module,
            scope_date=heading_date,
            scope_end=date_scope_end(lines, index, self.resolver),
        )

    def scan(self, text: str, course: str) -> ExtractionResult:
        lines = text.split('\n')
        ctx = ScanContext()
        assignments: List[Assignment] = []

        for index in range(len(lines)):
            ctx, candidates = self.step(ctx, lines, index, course)
            for candidate in candidates:
                if not is_duplicate(candidate, assignments):
                    assignments.append(candidate)

        modules = collect_modules(lines, assignments, course)
        logger.info("%s scan found %d assignment(s) in %d line(s)",
                    self.name, len(assignments), len(lines))
        return ExtractionResult(assignments=assignments, modules=modules)


class GenericExtractor(ScheduleExtractor):
    """Fallback for unknown document shapes: the schedule rules on any text."""

    name = "generic"

    def detect(self, text: str) -> bool:
        return True


def collect_modules(lines: List[str], assignments: List[Assignment], course: str) -> List[Module]:
    """Build Module records from week/module headings and link assignment ids."""
    modules: List[Module] = []
    for line in lines:
        match = WEEK_HEADER_FULL.match(line.strip())
        if not match:
            continue
        kind, number = match.group(1).lower(), int(match.group(2))
        title = clean_title(match.group(4) or "") or f"{kind.title()} {number}"
        if any(m.number == number and m.title == title for m in modules):
            continue
        if kind == 'week':
            ids = [a.id for a in assignments if a.week == number]
        else:
            ids = [a.id for a in assignments if a.module == number]
        modules.append(Module(number=number, title=title, course=course, assignment_ids=ids))
    return modules
