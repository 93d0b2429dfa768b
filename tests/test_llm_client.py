"""Unit tests for the language-model enhancement client."""

import json
from datetime import date

import httpx
import openai
import pytest

from studiora.config import Settings
from studiora.date_resolver import DateResolver
from studiora.domains import Domain, build_config
from studiora.exceptions import LLMResponseError
from studiora.llm_client import (
    LLMClient, parse_json_response, salvage_text_fragments, strip_code_fences,
)
from studiora.models import Assignment

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def status_error(cls, code):
    return cls(f"status {code}", response=httpx.Response(code, request=REQUEST), body=None)


@pytest.fixture
def resolver():
    return DateResolver(default_year=2025, today=date(2025, 1, 15))


@pytest.fixture
def config():
    return build_config("NURS 301", domain=Domain.NURSING)


def test_strip_code_fences():
    """Test fenced and prose-wrapped JSON is unwrapped."""
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('Sure! {"a": 1} Hope that helps.') == '{"a": 1}'


def test_parse_json_response():
    """Test JSON objects are parsed, with trailing commas repaired."""
    assert parse_json_response('```json\n{"assignments": []}\n```') == {"assignments": []}
    assert parse_json_response('{"a": [1, 2,],}') == {"a": [1, 2]}


def test_parse_json_response_rejects_garbage():
    """Test unparsable or non-object responses raise LLMResponseError."""
    with pytest.raises(LLMResponseError):
        parse_json_response("this is not json at all")
    with pytest.raises(LLMResponseError):
        parse_json_response("[1, 2]")
    with pytest.raises(LLMResponseError):
        parse_json_response("")


def test_salvage_text_fragments():
    """Test text values are recovered from truncated JSON."""
    broken = '{"assignments": [{"text": "Read Chapter 4 on renal", "date": "2025-05-'
    assert salvage_text_fragments(broken) == ["Read Chapter 4 on renal"]
    assert salvage_text_fragments('{"text": "He said \\"hi\\" twice"') == ['He said "hi" twice']


def test_client_without_credential_is_unavailable():
    """Test no OpenAI client is built without an API key."""
    llm = LLMClient(Settings())
    assert not llm.available
    outcome = llm.extract_remainder("Some remaining text " * 10, [])
    assert not outcome.ok
    assert outcome.assignments == []


def test_request_parameters(make_llm):
    """Test model, timeout and JSON response format are sent."""
    fake = make_llm(['{"assignments": []}'], model="gpt-test", timeout=30.0)
    fake.llm.extract_remainder("Bring your stethoscope to the practice session " * 3, [])

    call = fake.completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["timeout"] == 30.0
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0]["role"] == "system"


def test_extract_remainder_normalizes_records(make_llm, config, resolver):
    """Test service records become clamped Assignment objects."""
    reply = "```json\n" + json.dumps({"assignments": [
        {"text": "Bring stethoscope to practice session", "date": "May 20", "type": "preparation",
         "hours": 20, "confidence": 1.0},
        {"text": "Read", "date": "2025-05-21"},
        {"text": "Review renal medication list", "date": "2025-05-22", "points": "15"},
    ]}) + "\n```"
    fake = make_llm([reply])
    known = [Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12", type="quiz")]
    outcome = fake.llm.extract_remainder("remaining text", known, "NURS 301", config, resolver)

    assert outcome.ok
    assert len(outcome.assignments) == 2
    first, second = outcome.assignments
    assert first.source == "ai-remainder"
    assert first.date == "2025-05-20"
    assert first.hours == 8.0
    assert first.confidence == 0.95
    assert first.course == "NURS 301"
    assert second.points == 15
    assert second.type == "remediation"

    prompt = fake.completions.prompts()[0]
    assert "Quiz 3: Chapter 5 Review" in prompt
    assert "2025-05-12 to 2025-05-12" in prompt


def test_malformed_remainder_is_salvaged(make_llm, config, resolver):
    """Test a malformed response returns a failed outcome with salvaged text."""
    fake = make_llm(['{"assignments": [{"text": "Bring badge to orientation day", "date": '])
    outcome = fake.llm.extract_remainder("remaining text", [], "NURS 301", config, resolver)
    assert not outcome.ok
    assert outcome.error
    assert [a.text for a in outcome.assignments] == ["Bring badge to orientation day"]
    assert outcome.assignments[0].source == "ai-salvaged"


def test_timeout_is_retried_with_backoff(make_llm):
    """Test a timeout is retried and the next attempt succeeds."""
    fake = make_llm([openai.APITimeoutError(request=REQUEST), '{"assignments": []}'])
    outcome = fake.llm.extract_remainder("remaining text", [])
    assert outcome.ok
    assert len(fake.completions.calls) == 2
    assert fake.sleeps == [1.0]


def test_exhausted_retries_give_neutral_outcome(make_llm):
    """Test repeated connection failures end in a failed outcome, not an exception."""
    fake = make_llm([openai.APIConnectionError(request=REQUEST)] * 3, max_retries=3)
    outcome = fake.llm.extract_remainder("remaining text", [])
    assert not outcome.ok
    assert outcome.assignments == []
    assert len(fake.completions.calls) == 3
    assert fake.sleeps == [1.0, 2.0]


def test_rate_limit_backs_off_longer(make_llm):
    """Test rate limiting uses a longer delay."""
    fake = make_llm([status_error(openai.RateLimitError, 429), '{"assignments": []}'])
    assert fake.llm.extract_remainder("remaining text", []).ok
    assert fake.sleeps == [5.0]


def test_server_error_is_retried(make_llm):
    """Test 5xx responses are retried."""
    fake = make_llm([status_error(openai.InternalServerError, 500), '{"assignments": []}'])
    assert fake.llm.extract_remainder("remaining text", []).ok
    assert len(fake.completions.calls) == 2


def test_client_error_is_not_retried(make_llm):
    """Test 4xx responses fail immediately."""
    fake = make_llm([status_error(openai.BadRequestError, 400), '{"assignments": []}'])
    outcome = fake.llm.extract_remainder("remaining text", [])
    assert not outcome.ok
    assert "400" in outcome.error
    assert len(fake.completions.calls) == 1
    assert fake.sleeps == []


def test_validate_applies_results(make_llm, config, resolver):
    """Test valid records are enhanced in place, invalid ones dropped, missed ones added."""
    quiz = Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12", type="quiz", points=25)
    header = Assignment(text="Cardiac Care overview", type="assignment")
    untouched = Assignment(text="Read Chapter 12 on heart failure", type="reading")
    reply = json.dumps({
        "validatedAssignments": [{
            "originalId": quiz.id,
            "isValid": True,
            "validation": {"confidence": 0.9},
            "enhanced": {"text": "Quiz 3: Chapter 5 Cardiac Review", "date": "2025-05-13",
                         "dueTime": "11:59PM", "confidence": 0.9},
            "changes": ["date corrected"],
        }],
        "invalidAssignments": [{"originalId": header.id, "reason": "section header"}],
        "missedAssignments": [{"text": "Submit clinical reflection journal", "date": "2025-05-16",
                               "type": "assignment"}],
        "summary": {"totalValidated": 1},
    })
    fake = make_llm([reply])
    outcome = fake.llm.validate("document text", [quiz, header, untouched], "NURS 301",
                                "schedule", config, resolver)

    assert outcome.ok
    assert outcome.invalid_ids == [header.id]
    assert [a.id for a in outcome.assignments] == [quiz.id, untouched.id]

    enhanced = outcome.assignments[0]
    assert enhanced.validated
    assert enhanced.source == "regex-ai-validated"
    assert enhanced.text == "Quiz 3: Chapter 5 Cardiac Review"
    assert enhanced.date == "2025-05-13"
    assert enhanced.due_time == "11:59PM"
    assert enhanced.points == 25
    assert enhanced.changes == ["date corrected"]
    assert quiz.date == "2025-05-12"

    assert outcome.assignments[1] is untouched
    assert len(outcome.discovered) == 1
    assert outcome.discovered[0].source == "ai-discovered"
    assert outcome.discovered[0].confidence == 0.8


def test_validate_failure_keeps_candidates(make_llm, config, resolver):
    """Test a malformed validation response keeps every candidate."""
    quiz = Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12")
    fake = make_llm(["this is not json at all"])
    outcome = fake.llm.validate("document text", [quiz], "NURS 301", "schedule", config, resolver)
    assert not outcome.ok
    assert outcome.assignments == [quiz]
    assert outcome.discovered == []


def test_consolidate_returns_merge_instructions(make_llm):
    """Test consolidation only returns well-formed merge instructions."""
    reply = json.dumps({
        "merges": [{"kept": "a", "removed": ["b"], "reason": "same quiz"}, {"kept": "c"}],
        "summary": "1 duplicate removed",
    })
    fake = make_llm([reply])
    outcome = fake.llm.consolidate([Assignment(text="Quiz 3", id="a"), Assignment(text="Quiz three", id="b")])
    assert outcome.ok
    assert outcome.merges == [{"kept": "a", "removed": ["b"], "reason": "same quiz"}]
    assert outcome.summary == "1 duplicate removed"


def test_validate_tolerates_wrong_field_shapes(make_llm, config, resolver):
    """Test validation replies with misshapen fields do not raise."""
    quiz = Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12")
    reply = json.dumps({
        "validatedAssignments": [{"originalId": quiz.id, "isValid": True,
                                  "enhanced": "Quiz 3 Chapter 5", "validation": [0.9],
                                  "changes": "none"}],
        "invalidAssignments": "none",
    })
    fake = make_llm([reply])
    outcome = fake.llm.validate("document text", [quiz], "NURS 301", "schedule", config, resolver)

    assert outcome.ok
    assert outcome.assignments[0].id == quiz.id
    assert outcome.assignments[0].text == quiz.text
    assert outcome.assignments[0].validated
    assert outcome.assignments[0].changes == []


def test_validate_ignores_non_list_sections(make_llm, config, resolver):
    """Test a scalar where a list is expected leaves candidates untouched."""
    quiz = Assignment(text="Quiz 3: Chapter 5 Review", date="2025-05-12")
    fake = make_llm([json.dumps({"validatedAssignments": 3, "missedAssignments": {"text": "x"}})])
    outcome = fake.llm.validate("document text", [quiz], "NURS 301", "schedule", config, resolver)
    assert outcome.ok
    assert outcome.assignments == [quiz]
    assert outcome.discovered == []


def test_non_finite_numbers_are_dropped(make_llm, config, resolver):
    """Test NaN and Infinity values are treated as missing."""
    reply = ('{"missedAssignments": [{"text": "Read chapter 6 before class", '
             '"points": NaN, "hours": Infinity, "confidence": NaN}]}')
    fake = make_llm([reply])
    outcome = fake.llm.validate("document text", [Assignment(text="Quiz 3: Chapter 5 Review")],
                                "NURS 301", "schedule", config, resolver)
    assert outcome.ok
    missed = outcome.discovered[0]
    assert missed.points is None
    assert 0.25 <= missed.hours <= 8
    assert missed.confidence == 0.8


def test_remainder_shape_errors_give_neutral_outcome(make_llm, config, resolver, monkeypatch):
    """Test a record that cannot be normalized fails the task instead of raising."""
    def broken(*args, **kwargs):
        raise TypeError("unexpected record")

    monkeypatch.setattr(LLMClient, "normalize_assignment", broken)
    fake = make_llm([json.dumps({"assignments": [{"text": "Bring stethoscope to lab"}]})])
    outcome = fake.llm.extract_remainder("remaining text", [], "NURS 301", config, resolver)
    assert not outcome.ok
    assert outcome.assignments == []
    assert "unexpected record" in outcome.error


def test_consolidate_ignores_misshapen_merges(make_llm):
    """Test merges that are not a list of objects are ignored."""
    fake = make_llm([json.dumps({"merges": "a,b", "summary": 3})])
    outcome = fake.llm.consolidate([Assignment(text="Quiz 3", id="a"), Assignment(text="Quiz three", id="b")])
    assert outcome.ok
    assert outcome.merges == []
    assert outcome.summary is None
