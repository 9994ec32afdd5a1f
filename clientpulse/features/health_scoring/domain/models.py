"""
Domain models for client health scoring.

Engine inputs are plain frozen dataclasses holding already-resolved numbers
(days, counts, scores); the engine never looks at a clock. Outputs are
pydantic models so they serialize identically wherever they are stored.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    WATCH = "watch"
    ATTENTION = "attention"


class Trend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Signal(BaseModel):
    """A typed, severity-tagged observation behind a health score."""

    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    title: str
    description: str
    evidence: str | None = None


@dataclass(frozen=True, slots=True)
class ActionItemInput:
    owner: str
    status: str
    days_overdue: int = 0


@dataclass(frozen=True, slots=True)
class RecentNoteInput:
    ai_status: str
    sentiment_score: float | None = None
    mood: str | None = None
    risk_signals: tuple[str, ...] = ()
    has_concerns: bool = False


@dataclass(frozen=True, slots=True)
class ClientSignalInputs:
    """
    Everything the engine needs for one client.

    ``days_since_contact`` is None when the client was never contacted.
    ``recent_notes`` holds at most the 10 latest notes of the last 30 days,
    newest first.
    """

    client_id: str
    tenant_id: str
    days_since_contact: int | None
    action_items: tuple[ActionItemInput, ...] = ()
    recent_notes: tuple[RecentNoteInput, ...] = ()
    notes_last_30_days: int = 0
    notes_previous_30_days: int = 0


class HealthAssessment(BaseModel):
    """Engine output: score, status and the signals that explain them."""

    score: int = Field(ge=0, le=100)
    status: HealthStatus
    signals: list[Signal] = Field(default_factory=list)
    components: dict[str, float] = Field(default_factory=dict)


class HealthScore(BaseModel):
    """Current health of a client as stored on the client row."""

    client_id: str
    score: int = Field(ge=0, le=100)
    status: HealthStatus
    signals: list[Signal] = Field(default_factory=list)
    trend: Trend = Trend.STABLE
    updated_at: datetime


class HealthSnapshot(BaseModel):
    """Append-only history entry written on every recomputation."""

    client_id: str
    score: int
    status: HealthStatus
    signals: list[Signal] = Field(default_factory=list)
    snapshot_date: date
    created_at: datetime
