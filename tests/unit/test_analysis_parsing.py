import json
from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from clientpulse.features.note_analysis.domain.models import AnalysisJob, resolve_due_date
from clientpulse.features.note_analysis.providers.base import parse_analysis_payload
from clientpulse.features.note_analysis.providers.errors import MalformedResponseError


def _payload(**overrides) -> str:
    data = {
        "title": "Budget conversation",
        "summary": "Client flagged budget pressure for next quarter.",
        "sentiment_score": -0.4,
        "risk_signals": ["budget_mention"],
        "action_items": [
            {"description": "Send revised estimate", "owner": "me", "due_hint": "this week"}
        ],
    }
    data.update(overrides)
    return json.dumps(data)


def test_valid_payload_parses_with_defaults_for_missing_lists():
    result = parse_analysis_payload("openai", _payload())

    assert result.title == "Budget conversation"
    assert result.sentiment_score == -0.4
    assert result.risk_signals == ["budget_mention"]
    assert result.action_items[0].owner == "me"
    assert result.topics == []
    assert result.personal_details == []
    assert result.communication_style is None


def test_json_wrapped_in_prose_is_extracted():
    raw = f"Here is the analysis:\n```json\n{_payload()}\n```"

    result = parse_analysis_payload("gemini", raw)

    assert result.summary.startswith("Client flagged")


def test_missing_title_gets_placeholder():
    data = json.loads(_payload())
    del data["title"]

    result = parse_analysis_payload("openai", json.dumps(data))

    assert result.title == "Untitled Note"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "no json here",
        "{not valid json}",
        _payload(sentiment_score="0.5"),
        _payload(sentiment_score=1.5),
        _payload(risk_signals=None),
        _payload(action_items=[{"description": "x", "owner": "someone", "due_hint": "today"}]),
        _payload(topics=[f"topic {i}" for i in range(11)]),
        json.dumps({"title": "Missing summary"}),
    ],
)
def test_malformed_payloads_are_rejected(raw):
    with pytest.raises(MalformedResponseError) as exc_info:
        parse_analysis_payload("openai", raw)

    assert exc_info.value.recoverable is False
    assert exc_info.value.provider == "openai"


def test_json_array_is_rejected():
    with pytest.raises(MalformedResponseError):
        parse_analysis_payload("openai", "[1, 2, 3]")


def test_unknown_fields_are_ignored():
    result = parse_analysis_payload("openai", _payload(confidence=0.9))

    assert not hasattr(result, "confidence")


def test_resolve_due_date_hints():
    wednesday = date(2026, 10, 14)

    assert resolve_due_date("today", wednesday) == wednesday
    assert resolve_due_date("this week", wednesday) == date(2026, 10, 18)
    assert resolve_due_date("next week", wednesday) == date(2026, 10, 21)
    assert resolve_due_date("no specific date", wednesday) is None


def test_this_week_on_sunday_rolls_to_next_sunday():
    sunday = date(2026, 10, 18)

    assert resolve_due_date("this week", sunday) == date(2026, 10, 25)


def test_job_payload_round_trip_keeps_identity():
    job = AnalysisJob(
        note_id="note-1",
        tenant_id="tenant-1",
        attempt=2,
        provider="gemini",
        enqueued_at=datetime(2026, 10, 14, 9, 30, tzinfo=UTC),
    )

    restored = AnalysisJob.from_payload(job.to_payload())

    assert restored == job


def test_next_attempt_is_a_new_job():
    job = AnalysisJob(note_id="note-1", tenant_id="tenant-1")

    retry = job.next_attempt(provider="gemini")

    assert job.attempt == 1
    assert job.provider is None
    assert retry.attempt == 2
    assert retry.provider == "gemini"
    assert retry.enqueued_at >= job.enqueued_at


def test_job_rejects_attempt_zero():
    with pytest.raises(ValidationError):
        AnalysisJob(note_id="note-1", tenant_id="tenant-1", attempt=0)
