"""
Block-oriented extractors: Canvas module listings, tabular assignment
listings, syllabus prose and structured JSON exports.
"""

import json
import logging
import re
from typing import Dict, List, Optional

from .dedupe import is_duplicate
from .extractor_base import (
    COURSE_CODE, EXPLICIT_CONFIDENCE, GENERIC_CONFIDENCE, MIN_TEXT_LENGTH, SECTION_WORDS,
    Extractor, ExtractionResult, clean_title, extract_due_time, extract_points,
)
from .models import Assignment, Module
from .schedule_extractor import ScheduleExtractor

logger = logging.getLogger(__name__)


class ModulesExtractor(Extractor):
    """Canvas "Module N: Title" listings, scanned block by block."""

    name = "modules"

    MODULE_HEADER = re.compile(r'^Module\s+(\d+)\s*[:.\-]?\s*(.*)$', re.IGNORECASE | re.MULTILINE)
    POINTS_DUE = re.compile(r'^(?:[-•*]\s*)?(.+?)\s*\((\d+)\s*pts?\)\s*Due:\s*(.+)$', re.IGNORECASE)
    TYPED_ITEM = re.compile(
        r'^(?:[-•*]\s*)?(quiz|assignment|discussion|exam|lab|reading|video|project|paper)\b'
        r'\s*[:\-]?\s*(.*)$',
        re.IGNORECASE,
    )
    CHAPTERS = re.compile(r'\bchapters?\s+(\d+(?:\s*(?:-|,|and)\s*\d+)*)', re.IGNORECASE)
    TOPICS = re.compile(r'^(?:key\s+)?topics?\s*:\s*(.+)$', re.IGNORECASE)

    def detect(self, text: str) -> bool:
        return len(self.MODULE_HEADER.findall(text)) >= 1

    def scan(self, text: str, course: str) -> ExtractionResult:
        headers = list(self.MODULE_HEADER.finditer(text))
        assignments: List[Assignment] = []
        modules: List[Module] = []

        for i, header in enumerate(headers):
            block_end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
            block = text[header.end():block_end]
            number = int(header.group(1))
            module = Module(
                number=number,
                title=clean_title(header.group(2)) or f"Module {number}",
                course=course,
            )
            header_line = text.count("\n", 0, header.start())

            for offset, line in enumerate(block.split('\n')):
                line = line.strip()
                if not line:
                    continue
                self._collect_structure(module, line)
                candidate = self._match_module_line(line, course, header_line + offset, number)
                if candidate and not is_duplicate(candidate, assignments):
                    assignments.append(candidate)
                    module.assignment_ids.append(candidate.id)
            modules.append(module)

        logger.info("modules scan found %d module(s), %d assignment(s)", len(modules), len(assignments))
        return ExtractionResult(assignments=assignments, modules=modules)

    def _collect_structure(self, module: Module, line: str) -> None:
        for chapters in self.CHAPTERS.findall(line):
            if chapters not in module.chapters:
                module.chapters.append(chapters)
        topics = self.TOPICS.match(line)
        if topics:
            module.key_topics.extend(t.strip() for t in re.split(r'[,;]', topics.group(1)) if t.strip())

    def _match_module_line(self, line: str, course: str, line_index: int,
                           module_number: int) -> Optional[Assignment]:
        match = self.POINTS_DUE.match(line)
        if match:
            return self.make_assignment(
                clean_title(match.group(1)), course, EXPLICIT_CONFIDENCE,
                points=int(match.group(2)),
                resolved=self.resolver.resolve(match.group(3)),
                due_time=extract_due_time(match.group(3)),
                extracted_from=line, line_index=line_index, module=module_number,
            )
        match = self.TYPED_ITEM.match(line)
        if match and len(clean_title(line)) > 3:
            item_type = match.group(1).lower()
            return self.make_assignment(
                clean_title(line), course, EXPLICIT_CONFIDENCE,
                type_=item_type if item_type != 'paper' else None,
                points=extract_points(line),
                resolved=self.resolver.find_date(line),
                due_time=extract_due_time(line),
                extracted_from=line, line_index=line_index, module=module_number,
            )
        if self.TOPICS.match(line):
            return None
        return self.match_line(line, course, line_index=line_index, module=module_number)


class TabularExtractor(Extractor):
    """Assignment tables: pipe/tab separated rows or "Name Due: date (N pts)" rows."""

    name = "tabular"

    HEADER_CELLS = {'name', 'assignment', 'assignments', 'title', 'due', 'due date', 'date',
                    'points', 'pts', 'score', 'status', 'type', 'weight'}
    DUE_ROW = re.compile(
        r'^(?:[-•*]\s*)?(.+?)\s*[-,]?\s*Due:?\s*(.+?)\s*(?:\((\d+)\s*pts?\)|[-,]\s*(\d+)\s*pts?)?\s*$',
        re.IGNORECASE,
    )
    POINTS_CELL = re.compile(r'^(\d+)\s*(?:pts?|points?)?$', re.IGNORECASE)

    def detect(self, text: str) -> bool:
        rows = [l for l in text.split('\n') if l.count('|') >= 2 or
                (re.search(r'\bdue\b', l, re.IGNORECASE) and re.search(r'\bpts?\b', l, re.IGNORECASE))]
        return len(rows) >= 2

    def scan(self, text: str, course: str) -> ExtractionResult:
        assignments: List[Assignment] = []
        for index, line in enumerate(text.split('\n')):
            line = line.strip()
            if not line:
                continue
            candidate = self._parse_row(line, course, index)
            if candidate and not is_duplicate(candidate, assignments):
                assignments.append(candidate)
        logger.info("tabular scan found %d assignment(s)", len(assignments))
        return ExtractionResult(assignments=assignments)

    def _parse_row(self, line: str, course: str, index: int) -> Optional[Assignment]:
        if '|' in line:
            return self._parse_cells(line, course, index)
        match = self.DUE_ROW.match(line)
        if not match:
            return None
        title = clean_title(match.group(1))
        resolved = self.resolver.resolve(match.group(2))
        if len(title) <= 3 or resolved is None:
            return None
        points = match.group(3) or match.group(4)
        return self.make_assignment(
            title, course, EXPLICIT_CONFIDENCE,
            points=int(points) if points else extract_points(line),
            resolved=resolved,
            due_time=extract_due_time(match.group(2)),
            extracted_from=line, line_index=index,
        )

    def _parse_cells(self, line: str, course: str, index: int) -> Optional[Assignment]:
        cells = [c.strip() for c in line.strip('|').split('|')]
        cells = [c for c in cells if c]
        if len(cells) < 2 or all(re.fullmatch(r'[-:= ]+', c) for c in cells):
            return None
        if all(c.lower() in self.HEADER_CELLS for c in cells):
            return None

        title = clean_title(cells[0])
        resolved = None
        due_time = None
        points = None
        for cell in cells[1:]:
            if points is None:
                points_match = self.POINTS_CELL.match(cell)
                if points_match:
                    points = int(points_match.group(1))
                    continue
            if resolved is None:
                resolved = self.resolver.resolve(cell)
                if resolved is not None:
                    due_time = extract_due_time(cell)
        if len(title) <= 3:
            return None
        return self.make_assignment(
            title, course, EXPLICIT_CONFIDENCE,
            points=points, resolved=resolved, due_time=due_time,
            extracted_from=line, line_index=index,
        )


class SyllabusExtractor(ScheduleExtractor):
    """Syllabus documents: weekly schedule sections, due-date prose, grading and course info."""

    name = "syllabus"

    INDICATORS = ('syllabus', 'course description', 'instructor', 'office hours',
                  'grading', 'learning outcomes', 'prerequisite')
    GRADING = re.compile(r'^[-•*]?\s*([A-Za-z][\w/&]*(?:\s+[\w/&]+){0,3})\s*[:=]\s*(\d+(?:\.\d+)?)\s*%',
                         re.MULTILINE)
    INSTRUCTOR = re.compile(r'^(?:instructor|professor|faculty)\s*:\s*(.+)$', re.IGNORECASE | re.MULTILINE)
    TERM = re.compile(r'\b((?:spring|summer|fall|winter)\s+\d{4})\b', re.IGNORECASE)
    DUE_SENTENCE = re.compile(
        r'([A-Z][^.\n]{3,160}?\b(?:is|are)\s+due\b[^.\n]*)\.?',
    )

    def detect(self, text: str) -> bool:
        lower = text.lower()
        return sum(1 for word in self.INDICATORS if word in lower) >= 2

    def scan(self, text: str, course: str) -> ExtractionResult:
        result = super().scan(text, course)
        found = result.assignments

        for index, line in enumerate(text.split('\n')):
            if SECTION_WORDS.match(line.strip()):
                continue
            for match in self.DUE_SENTENCE.finditer(line):
                resolved = self.resolver.find_date(match.group(1))
                if resolved is None:
                    continue
                candidate = self.make_assignment(
                    match.group(1).strip(), course, GENERIC_CONFIDENCE,
                    points=extract_points(match.group(1)),
                    resolved=resolved,
                    due_time=extract_due_time(match.group(1)),
                    extracted_from=match.group(1).strip(), line_index=index,
                )
                if not is_duplicate(candidate, found) and not any(
                        a.line_index == index for a in found):
                    found.append(candidate)

        result.grading_breakdown = self.grading_breakdown(text)
        result.course_info = self.course_info(text)
        return result

    def grading_breakdown(self, text: str) -> Dict[str, float]:
        """Collect "Category: N%" weights."""
        breakdown: Dict[str, float] = {}
        for name, weight in self.GRADING.findall(text):
            key = name.strip().lower()
            if key not in breakdown:
                breakdown[key] = float(weight)
        return breakdown

    def course_info(self, text: str) -> Dict[str, str]:
        """Collect course code, title, instructor and term when present."""
        info: Dict[str, str] = {}
        code = COURSE_CODE.search(text)
        if code:
            info['code'] = f"{code.group(1)} {code.group(2)}"
            if code.group(3):
                info['title'] = code.group(3).strip()
        instructor = self.INSTRUCTOR.search(text)
        if instructor:
            info['instructor'] = instructor.group(1).strip()
        term = self.TERM.search(text)
        if term:
            info['term'] = term.group(1).title()
        return info


class JsonExtractor(Extractor):
    """Structured exports: a JSON object holding modules, events and assignments.

    Recognized keys are ``assignments``, ``modules`` (or ``semesterModules``)
    and ``events`` (or ``calendarEvents``). Assignments listed inside a
    module are tagged with its number.
    """

    name = "json"

    def detect(self, text: str) -> bool:
        return load_json_document(text) is not None

    def recover_missed(self, text: str, found: List[Assignment], course: str) -> List[Assignment]:
        return []

    def scan(self, text: str, course: str) -> ExtractionResult:
        data = load_json_document(text) or {}
        result = ExtractionResult()

        for index, raw in enumerate(_records(data, 'assignments')):
            candidate = self._record(raw, course, index)
            if candidate and not is_duplicate(candidate, result.assignments):
                result.assignments.append(candidate)

        for position, raw in enumerate(_records(data, 'modules', 'semesterModules'), start=1):
            if not isinstance(raw, dict):
                continue
            number = _whole_number(raw.get('number') or raw.get('moduleNumber')) or position
            module = Module(
                number=number,
                title=str(raw.get('title') or raw.get('name') or f"Module {number}").strip(),
                course=str(raw.get('course') or course),
                chapters=[str(c) for c in _as_list(raw.get('chapters'))],
                key_topics=[str(t) for t in _as_list(raw.get('keyTopics') or raw.get('topics'))],
            )
            for raw_assignment in _as_list(raw.get('assignments')):
                candidate = self._record(raw_assignment, module.course, len(result.assignments),
                                         module=number)
                if candidate and not is_duplicate(candidate, result.assignments):
                    result.assignments.append(candidate)
                    module.assignment_ids.append(candidate.id)
            result.modules.append(module)

        for index, raw in enumerate(_records(data, 'events', 'calendarEvents')):
            event = self._record(raw, course, index, default_type='event', source='json-event')
            if event:
                result.events.append(event)

        logger.info("JSON document held %d assignment(s), %d module(s), %d event(s)",
                    len(result.assignments), len(result.modules), len(result.events))
        return result

    def _record(self, raw, course: str, index: int, module: Optional[int] = None,
                default_type: Optional[str] = None,
                source: Optional[str] = None) -> Optional[Assignment]:
        if isinstance(raw, str):
            raw = {'text': raw}
        if not isinstance(raw, dict):
            return None
        text = ' '.join(str(raw.get('text') or raw.get('title') or raw.get('name') or '').split())
        if len(text) <= MIN_TEXT_LENGTH:
            return None
        when = raw.get('date') or raw.get('dueDate') or raw.get('due_date') or raw.get('due')
        assignment_type = str(raw.get('type') or '').strip().lower() or default_type
        return self.make_assignment(
            text, str(raw.get('course') or course), EXPLICIT_CONFIDENCE,
            type_=assignment_type,
            points=_whole_number(raw.get('points')),
            resolved=self.resolver.resolve(str(when)) if when else None,
            due_time=raw.get('dueTime') if isinstance(raw.get('dueTime'), str) else None,
            extracted_from=text,
            line_index=index,
            module=module,
            source=source,
        )


def load_json_document(text: str) -> Optional[Dict]:
    """Decode text that is a single JSON object; None for anything else."""
    stripped = text.strip()
    if not stripped.startswith('{'):
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        logger.warning("Document looks like JSON but could not be decoded: %s", e)
        return None
    return data if isinstance(data, dict) else None


def _records(data: Dict, *keys: str) -> List:
    for key in keys:
        if isinstance(data.get(key), list):
            return data[key]
    return []


def _as_list(value) -> List:
    return value if isinstance(value, list) else []


def _whole_number(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
