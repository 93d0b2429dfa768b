"""
Language-model enhancement client.

Wraps one call-and-parse cycle against the OpenAI chat completions API for
three tasks: mining remainder text, validating pattern-matched candidates
and consolidating the merged list. Every public method returns an
``EnhancementOutcome``; network failures, exhausted retries and unparsable
responses never raise past this module.
"""

import json
import logging
import math
import re
import time
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

import openai
from openai import OpenAI

from .config import Settings
from .date_resolver import DateResolver
from .domains import Domain, ParserConfig, build_config
from .exceptions import LLMResponseError
from .models import (
    Assignment, UNKNOWN_COURSE,
    clamp_confidence, clamp_hours, new_assignment_id,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an academic assistant that extracts assignments from course documents. "
    "ALWAYS respond with a single clean JSON object. No prose, no markdown, no code fences."
)
VALIDATION_CONTEXT_CHARS = 15000
MIN_AI_TEXT_LENGTH = 5
DISCOVERED_CONFIDENCE = 0.8
REMAINDER_CONFIDENCE = 0.7
SALVAGED_CONFIDENCE = 0.5
BACKOFF_BASE = 1.0      # seconds; doubled per attempt
RATE_LIMIT_FACTOR = 5

CODE_FENCE = re.compile(r'```(?:json)?\s*([\s\S]*?)\s*```', re.IGNORECASE)
TEXT_FRAGMENT = re.compile(r'"text"\s*:\s*"((?:[^"\\]|\\.)*)"')
ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


@dataclass
class EnhancementOutcome:
    """Normalized result of one language-model task."""
    ok: bool = True
    assignments: List[Assignment] = field(default_factory=list)
    invalid_ids: List[str] = field(default_factory=list)
    discovered: List[Assignment] = field(default_factory=list)
    merges: List[Dict[str, Any]] = field(default_factory=list)
    summary: Optional[str] = None
    error: Optional[str] = None


def strip_code_fences(content: str) -> str:
    """Remove markdown fences or surrounding prose from a JSON response."""
    content = (content or "").strip()
    fenced = CODE_FENCE.search(content)
    if fenced:
        return fenced.group(1).strip()
    first, last = content.find('{'), content.rfind('}')
    if first != -1 and last > first:
        return content[first:last + 1]
    return content


def parse_json_response(content: str) -> Dict[str, Any]:
    """Parse a response that should contain a single JSON object.

    Raises:
        LLMResponseError: If no JSON object can be recovered
    """
    candidate = strip_code_fences(content)
    if not candidate:
        raise LLMResponseError("Empty response")
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        repaired = re.sub(r',\s*([}\]])', r'\1', candidate)
        if repaired == candidate:
            raise LLMResponseError(f"Invalid JSON: {e.msg} at position {e.pos}") from e
        try:
            parsed = json.loads(repaired)
        except json.JSONDecodeError as e2:
            raise LLMResponseError(f"Invalid JSON after repair: {e2.msg}") from e2
    if not isinstance(parsed, dict):
        raise LLMResponseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def salvage_text_fragments(content: str) -> List[str]:
    """Recover ``"text": "..."`` values from a malformed JSON response."""
    fragments = []
    for raw in TEXT_FRAGMENT.findall(content or ""):
        try:
            value = json.loads(f'"{raw}"')
        except json.JSONDecodeError:
            value = raw
        value = value.strip()
        if len(value) > MIN_AI_TEXT_LENGTH and value not in fragments:
            fragments.append(value)
    return fragments


class LLMClient:
    """Calls the completion service with retries and normalizes responses."""

    def __init__(self, settings: Settings, client: Optional[Any] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """Initialize the client.

        Args:
            settings: Runtime settings (credential, model, timeout, retries)
            client: Optional pre-built client exposing ``chat.completions.create``;
                an OpenAI client is built from the settings when omitted
            sleep: Backoff sleep function
        """
        self.settings = settings
        self.model = settings.model
        self.timeout = settings.timeout
        self.max_retries = max(1, settings.max_retries)
        self.sleep = sleep
        if client is None and settings.has_credential:
            # Retries are handled here so the SDK's own retry loop is disabled
            client = OpenAI(api_key=settings.openai_api_key, timeout=settings.timeout, max_retries=0)
        self.client = client

    @property
    def available(self) -> bool:
        return self.client is not None

    def _request(self, task: str, prompt: str, temperature: float = 0.1) -> str:
        """Send one prompt, retrying transient failures with exponential backoff.

        Returns:
            Raw response content

        Raises:
            LLMResponseError: If no client is configured, a non-retryable status
                is returned, or all attempts fail
        """
        if self.client is None:
            raise LLMResponseError("No language-model client configured")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries):
            delay = BACKOFF_BASE * (2 ** attempt)
            try:
                logger.info("Calling %s for %s (attempt %d/%d)",
                            self.model, task, attempt + 1, self.max_retries)
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=temperature,
                    response_format={"type": "json_object"},
                    timeout=self.timeout,
                )
                content = response.choices[0].message.content if response.choices else None
                return (content or "").strip()
            except openai.APITimeoutError as e:
                logger.warning("Timeout during %s (attempt %d/%d): %s",
                               task, attempt + 1, self.max_retries, e)
                last_error = e
            except openai.RateLimitError as e:
                logger.warning("Rate limited during %s (attempt %d/%d)",
                               task, attempt + 1, self.max_retries)
                last_error = e
                delay *= RATE_LIMIT_FACTOR
            except openai.APIConnectionError as e:
                logger.warning("Connection error during %s (attempt %d/%d): %s",
                               task, attempt + 1, self.max_retries, e)
                last_error = e
            except openai.APIStatusError as e:
                if not 500 <= e.status_code < 600:
                    raise LLMResponseError(f"{task} rejected with status {e.status_code}") from e
                logger.warning("Server error %d during %s (attempt %d/%d)",
                               e.status_code, task, attempt + 1, self.max_retries)
                last_error = e
            except openai.APIError as e:
                logger.warning("API error during %s (attempt %d/%d): %s",
                               task, attempt + 1, self.max_retries, e)
                last_error = e

            if attempt < self.max_retries - 1:
                self.sleep(delay)

        logger.error("Exhausted %d attempt(s) for %s", self.max_retries, task)
        raise LLMResponseError(f"{task} failed after {self.max_retries} attempt(s): {last_error}")

    # Normalization

    def normalize_assignment(self, raw: Dict[str, Any], source: str, course: str,
                             config: ParserConfig, resolver: DateResolver,
                             default_confidence: float) -> Optional[Assignment]:
        """Convert a service-shaped record into an Assignment.

        Returns:
            Assignment, or None when the record has no usable text
        """
        if not isinstance(raw, dict):
            return None
        text = ' '.join(str(raw.get('text') or raw.get('title') or '').split())
        if len(text) <= MIN_AI_TEXT_LENGTH:
            return None

        assignment_type = str(raw.get('type') or '').strip().lower() or config.determine_type(text)
        hours = _as_float(raw.get('hours'))
        if hours is None:
            hours = config.estimate_hours(assignment_type, text)
        confidence = _as_float(raw.get('confidence'))

        return Assignment(
            id=new_assignment_id(source.replace('-', '_')),
            text=text,
            date=_normalize_date(raw.get('date'), resolver),
            type=assignment_type,
            hours=clamp_hours(hours),
            points=_as_int(raw.get('points')),
            course=str(raw.get('course') or course or UNKNOWN_COURSE),
            confidence=clamp_confidence(confidence if confidence is not None else default_confidence),
            source=source,
            due_time=raw.get('dueTime') or raw.get('due_time'),
        )

    def _salvaged(self, content: str, course: str, config: ParserConfig) -> List[Assignment]:
        salvaged = []
        for text in salvage_text_fragments(content):
            assignment_type = config.determine_type(text)
            salvaged.append(Assignment(
                id=new_assignment_id('ai_salvaged'),
                text=text,
                type=assignment_type,
                hours=clamp_hours(config.estimate_hours(assignment_type, text)),
                course=course,
                confidence=SALVAGED_CONFIDENCE,
                source='ai-salvaged',
            ))
        if salvaged:
            logger.warning("Salvaged %d text fragment(s) from a malformed response", len(salvaged))
        return salvaged

    # Tasks

    def extract_remainder(self, text: str, known: Sequence[Assignment],
                          course: str = UNKNOWN_COURSE, config: Optional[ParserConfig] = None,
                          resolver: Optional[DateResolver] = None) -> EnhancementOutcome:
        """Ask the service for assignments in text the pattern stage did not cover.

        Args:
            text: Remainder text
            known: Assignments already found (not to be re-extracted)
            course: Course identifier
            config: Parser config for type/hour inference
            resolver: Date resolver for non-ISO dates

        Returns:
            EnhancementOutcome with ``assignments`` holding new records
        """
        config = config or build_config(course, domain=Domain.DEFAULT)
        resolver = resolver or DateResolver()
        prompt = build_remainder_prompt(text, known, course, resolver.today)

        try:
            content = self._request('remainder extraction', prompt, temperature=0.3)
        except LLMResponseError as e:
            return EnhancementOutcome(ok=False, error=str(e))

        try:
            payload = parse_json_response(content)
        except LLMResponseError as e:
            logger.warning("Remainder response unusable: %s", e)
            return EnhancementOutcome(ok=False, error=str(e),
                                      assignments=self._salvaged(content, course, config))

        assignments = []
        try:
            for raw in _as_list(payload.get('assignments')):
                assignment = self.normalize_assignment(raw, 'ai-remainder', course, config,
                                                       resolver, REMAINDER_CONFIDENCE)
                if assignment:
                    assignments.append(assignment)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Remainder response has unexpected shape: %s", e)
            return EnhancementOutcome(ok=False, error=f"Unexpected response shape: {e}")
        notes = payload.get('analysisNotes')
        return EnhancementOutcome(assignments=assignments,
                                  summary=notes if isinstance(notes, str) else None)

    def validate(self, original_text: str, candidates: Sequence[Assignment],
                 course: str = UNKNOWN_COURSE, document_type: str = "mixed",
                 config: Optional[ParserConfig] = None,
                 resolver: Optional[DateResolver] = None) -> EnhancementOutcome:
        """Ask the service to validate and enhance pattern-matched candidates.

        Valid candidates keep their id and are rewritten with the enhanced
        fields; candidates the service marks invalid are dropped; candidates
        it does not mention are kept unchanged.

        Returns:
            EnhancementOutcome with ``assignments`` (kept candidates),
            ``invalid_ids`` and ``discovered``
        """
        config = config or build_config(course, domain=Domain.DEFAULT)
        resolver = resolver or DateResolver()
        prompt = build_validation_prompt(original_text, candidates, course, document_type,
                                         resolver.today)

        try:
            content = self._request('validation', prompt)
        except LLMResponseError as e:
            return EnhancementOutcome(ok=False, assignments=list(candidates), error=str(e))

        try:
            payload = parse_json_response(content)
        except LLMResponseError as e:
            logger.warning("Validation response unusable: %s", e)
            return EnhancementOutcome(ok=False, assignments=list(candidates), error=str(e),
                                      discovered=self._salvaged(content, course, config))

        try:
            return self.apply_validation(payload, candidates, course, config, resolver)
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning("Validation response has unexpected shape: %s", e)
            return EnhancementOutcome(ok=False, assignments=list(candidates),
                                      error=f"Unexpected response shape: {e}")

    def apply_validation(self, payload: Dict[str, Any], candidates: Sequence[Assignment],
                         course: str, config: ParserConfig,
                         resolver: DateResolver) -> EnhancementOutcome:
        """Merge a validation payload into the candidate list."""
        entries = {}
        for entry in _as_list(payload.get('validatedAssignments')):
            if isinstance(entry, dict) and entry.get('originalId') is not None:
                entries[str(entry['originalId'])] = entry
        invalid = {str(e.get('originalId')) for e in _as_list(payload.get('invalidAssignments'))
                   if isinstance(e, dict) and e.get('originalId') is not None}

        kept: List[Assignment] = []
        invalid_ids: List[str] = []
        for candidate in candidates:
            entry = entries.get(candidate.id)
            if candidate.id in invalid or (entry is not None and entry.get('isValid') is False):
                invalid_ids.append(candidate.id)
                continue
            if entry is not None and entry.get('isValid'):
                kept.append(self._enhance(candidate, entry, resolver))
            else:
                kept.append(candidate)

        discovered = []
        for raw in _as_list(payload.get('missedAssignments')):
            assignment = self.normalize_assignment(raw, 'ai-discovered', course, config,
                                                   resolver, DISCOVERED_CONFIDENCE)
            if assignment:
                assignment.confidence = DISCOVERED_CONFIDENCE
                discovered.append(assignment)

        summary = payload.get('summary')
        return EnhancementOutcome(
            assignments=kept,
            invalid_ids=invalid_ids,
            discovered=discovered,
            summary=json.dumps(summary) if isinstance(summary, dict) else summary,
        )

    def _enhance(self, candidate: Assignment, entry: Dict[str, Any],
                 resolver: DateResolver) -> Assignment:
        enhanced = _as_dict(entry.get('enhanced'))
        validation = _as_dict(entry.get('validation'))
        validation_confidence = _as_float(validation.get('confidence'))

        updates: Dict[str, Any] = {
            'source': 'regex-ai-validated',
            'validated': True,
            'validation_confidence': validation_confidence,
            'changes': [str(c) for c in _as_list(entry.get('changes'))],
        }
        text = ' '.join(str(enhanced.get('text') or '').split())
        if len(text) > MIN_AI_TEXT_LENGTH:
            updates['text'] = text
        new_date = _normalize_date(enhanced.get('date'), resolver)
        if new_date:
            updates['date'] = new_date
        if enhanced.get('type'):
            updates['type'] = str(enhanced['type']).strip().lower()
        hours = _as_float(enhanced.get('hours'))
        if hours is not None:
            updates['hours'] = clamp_hours(hours)
        points = _as_int(enhanced.get('points'))
        if points is not None:
            updates['points'] = points
        if enhanced.get('course'):
            updates['course'] = str(enhanced['course'])
        if enhanced.get('dueTime'):
            updates['due_time'] = str(enhanced['dueTime'])
        confidence = _as_float(enhanced.get('confidence'))
        if confidence is None:
            confidence = validation_confidence
        if confidence is not None:
            updates['confidence'] = clamp_confidence(confidence)
        return replace(candidate, **updates)

    def consolidate(self, assignments: Sequence[Assignment]) -> EnhancementOutcome:
        """Ask the service which records are duplicates of each other.

        Only the ``merges`` instructions are used; records themselves are
        never replaced by the service's copies.
        """
        prompt = build_consolidation_prompt(assignments)
        try:
            payload = parse_json_response(self._request('consolidation', prompt))
        except LLMResponseError as e:
            logger.warning("Consolidation skipped: %s", e)
            return EnhancementOutcome(ok=False, error=str(e))

        merges = [m for m in _as_list(payload.get('merges'))
                  if isinstance(m, dict) and isinstance(m.get('kept'), str) and m['kept']
                  and isinstance(m.get('removed'), list)]
        summary = payload.get('summary')
        return EnhancementOutcome(merges=merges, summary=summary if isinstance(summary, str) else None)


# Prompt builders

def _assignment_brief(assignment: Assignment) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "text": assignment.text,
        "date": assignment.date,
        "type": assignment.type,
        "points": assignment.points,
        "source": assignment.source,
    }


def build_remainder_prompt(text: str, known: Sequence[Assignment], course: str,
                           today: date) -> str:
    found_types = sorted({a.type for a in known})
    dates = sorted(a.date for a in known if a.date)
    date_range = f"{dates[0]} to {dates[-1]}" if dates else "No dates found"
    already_found = "\n".join(f"- {a.text[:50]}" for a in known) or "- (none)"
    return f"""You are analyzing text that remains after pattern extraction found {len(known)} assignments.

WHAT WAS FOUND:
- Assignment types: {', '.join(found_types) or 'none'}
- Date range: {date_range}

REMAINING TEXT TO ANALYZE:
{text}

Look for assignments that were missed: implicit tasks ("prepare for...", "bring to clinical"),
assignments written as narrative, prep work, participation requirements, and deadlines
mentioned without clear assignment text.

Do NOT re-extract these already found assignments:
{already_found}

Current date: {today.isoformat()}. Course: {course}.

Respond with JSON only:
{{"assignments": [{{"text": "...", "date": "YYYY-MM-DD or null", "type": "reading|quiz|exam|assignment|preparation|clinical|discussion|other",
"hours": 1.0, "points": null, "course": "{course}", "confidence": 0.7}}],
"analysisNotes": "brief notes"}}"""


def build_validation_prompt(original_text: str, candidates: Sequence[Assignment], course: str,
                            document_type: str, today: date) -> str:
    context = original_text[:VALIDATION_CONTEXT_CHARS]
    listing = json.dumps([_assignment_brief(a) for a in candidates], indent=2)
    return f"""You are validating {len(candidates)} assignments extracted by pattern matching from a {document_type} document.

For each assignment: verify it is a real assignment (not a header or description), convert its date to
absolute YYYY-MM-DD, correct its type, complete missing details from the document, and flag false positives.
Also list assignments present in the document but missing from the list.

DOCUMENT (first {len(context)} characters):
{context}

ASSIGNMENTS TO VALIDATE:
{listing}

Current date: {today.isoformat()}. Course: {course}.

Respond with JSON only:
{{"validatedAssignments": [{{"originalId": "...", "isValid": true,
   "validation": {{"confidence": 0.9}},
   "enhanced": {{"text": "...", "date": "YYYY-MM-DD", "type": "...", "hours": 1.5, "points": 25, "dueTime": "11:59PM", "confidence": 0.9}},
   "changes": ["..."]}}],
 "invalidAssignments": [{{"originalId": "...", "reason": "..."}}],
 "missedAssignments": [{{"text": "...", "date": "YYYY-MM-DD", "type": "..."}}],
 "summary": {{"totalValidated": 0, "invalid": 0, "missed": 0}}}}"""


def build_consolidation_prompt(assignments: Sequence[Assignment]) -> str:
    listing = json.dumps([_assignment_brief(a) for a in assignments], indent=2)
    return f"""Final consolidation of {len(assignments)} assignments from multiple sources.

Identify true duplicates (the same assignment worded differently). Do not merge distinct
assignments that merely share a date.

ASSIGNMENTS:
{listing}

Respond with JSON only:
{{"merges": [{{"kept": "id", "removed": ["id"], "reason": "..."}}],
 "summary": "X assignments after consolidation (Y duplicates removed)"}}"""


# Value coercion

def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    return int(number) if number is not None else None


def _normalize_date(value: Any, resolver: DateResolver) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if ISO_DATE.match(value):
        try:
            return date.fromisoformat(value).isoformat()
        except ValueError:
            return None
    return resolver.resolve_iso(value)
