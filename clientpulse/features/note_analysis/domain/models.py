"""
Domain models for the note analysis feature.

AnalysisJob travels over the queue, AnalysisResult is the normalized
provider output, and NoteForAnalysis is the slice of a note row the
pipeline reads. Validation lives on the pydantic models so every provider
adapter shares one definition of a well-formed analysis.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class NoteStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(UTC)


class AnalysisJob(BaseModel):
    """One queued unit of enrichment work for a note and attempt."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    note_id: str = Field(min_length=1)
    tenant_id: str = Field(min_length=1)
    attempt: int = Field(default=1, ge=1)
    provider: str | None = None
    enqueued_at: datetime = Field(default_factory=utc_now)

    def next_attempt(self, provider: str | None = None) -> "AnalysisJob":
        """New logical attempt; the current job is left untouched."""
        return AnalysisJob(
            note_id=self.note_id,
            tenant_id=self.tenant_id,
            attempt=self.attempt + 1,
            provider=provider,
        )

    def to_payload(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_payload(cls, payload: str) -> "AnalysisJob":
        return cls.model_validate_json(payload)


Text100 = Annotated[str, Field(max_length=100)]
Text200 = Annotated[str, Field(max_length=200)]
Text500 = Annotated[str, Field(max_length=500)]

DueHint = Literal["today", "this week", "next week", "no specific date"]


class ActionItemSuggestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    description: str = Field(max_length=300)
    owner: Literal["me", "client"]
    due_hint: DueHint


class AnalysisResult(BaseModel):
    """
    Normalized analysis output, independent of the provider that produced it.

    Absent list fields default to empty lists; explicit nulls or wrong types
    fail validation.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = Field(default="Untitled Note", max_length=150)
    summary: str = Field(max_length=1000)
    action_items: list[ActionItemSuggestion] = Field(default_factory=list, max_length=10)
    sentiment_score: float = Field(default=0.0, ge=-1.0, le=1.0, strict=True)
    risk_signals: list[Text500] = Field(default_factory=list, max_length=5)
    topics: list[Text100] = Field(default_factory=list, max_length=10)
    key_insights: list[Text500] = Field(default_factory=list, max_length=5)
    relationship_signals: list[Text500] = Field(default_factory=list, max_length=5)
    follow_up_recommendations: list[Text500] = Field(default_factory=list, max_length=5)
    personal_details: list[Text200] = Field(default_factory=list, max_length=5)
    communication_style: str | None = Field(default=None, max_length=500)


@dataclass(slots=True)
class NoteForAnalysis:
    """Note row joined with its client, as read by the pipeline worker."""

    id: str
    tenant_id: str
    client_id: str
    client_name: str
    ai_status: NoteStatus
    ai_attempt: int
    ai_claimed_at: datetime | None
    ai_requested_at: datetime | None
    title: str | None = None
    summary: str | None = None
    discussed: str | None = None
    decisions: str | None = None
    action_items_raw: str | None = None
    concerns: str | None = None
    personal_notes: str | None = None
    next_steps: str | None = None
    mood: str | None = None
    meeting_date: str | None = None
    meeting_type: str | None = None


@dataclass(slots=True)
class JobOutcome:
    """Result of handling one delivery: whether to acknowledge it, and why."""

    job: AnalysisJob
    ack: bool
    reason: str


def resolve_due_date(hint: str, today: date) -> date | None:
    """Turn a provider due hint into a concrete date (weeks end on Sunday)."""
    if hint == "today":
        return today
    if hint == "this week":
        # Days until the coming Sunday; a Sunday rolls to the next one
        days_from_sunday = (today.weekday() + 1) % 7
        return today + timedelta(days=7 - days_from_sunday)
    if hint == "next week":
        return today + timedelta(days=7)
    return None
