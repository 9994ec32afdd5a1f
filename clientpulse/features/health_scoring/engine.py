"""
Client health scoring engine.

Pure functions only: no I/O, no clock, no randomness. The same
ClientSignalInputs always produce the same score, status and signals, which
keeps the nightly full recalculation idempotent.
"""

import math
import re
from collections.abc import Iterable

from .domain.models import (
    ActionItemInput,
    ClientSignalInputs,
    HealthAssessment,
    HealthStatus,
    RecentNoteInput,
    Severity,
    Signal,
    Trend,
)

# Component weights in points; they sum to 100
WEIGHTS = {
    "contact_recency": 30,
    "commitments": 25,
    "sentiment": 25,
    "risk": 20,
}

HEALTHY_THRESHOLD = 80
WATCH_THRESHOLD = 50
TREND_DELTA = 5

OVERDUE_PENALTY = 0.25
RISK_SEVERITY_WEIGHTS = {
    Severity.LOW: 0.1,
    Severity.MEDIUM: 0.25,
    Severity.HIGH: 0.5,
}
MAX_REPORTED_RISK_SIGNALS = 5

# Stand-in sentiment for notes the pipeline has not analyzed
MOOD_SENTIMENT = {
    "positive": 0.5,
    "neutral": 0.0,
    "negative": -0.5,
    "concerned": -0.5,
    "frustrated": -0.5,
}

_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")

# Signal types the engine emits itself; provider risks never reuse them
RESERVED_SIGNAL_TYPES = frozenset(
    {
        "contact_gap",
        "overdue_commitment",
        "negative_sentiment",
        "concerns_raised",
        "meeting_frequency_drop",
    }
)


def classify_score(score: int) -> HealthStatus:
    if score >= HEALTHY_THRESHOLD:
        return HealthStatus.HEALTHY
    if score >= WATCH_THRESHOLD:
        return HealthStatus.WATCH
    return HealthStatus.ATTENTION


def compute_trend(score: int, previous_score: int | None) -> Trend:
    """Compare against the latest stored snapshot; no snapshot means stable."""
    if previous_score is None:
        return Trend.STABLE
    delta = score - previous_score
    if delta >= TREND_DELTA:
        return Trend.IMPROVING
    if delta <= -TREND_DELTA:
        return Trend.DECLINING
    return Trend.STABLE


def slugify_signal(text: str) -> str:
    """Normalize a provider risk string into a signal type, e.g. ``budget_mention``."""
    slug = _SLUG_PATTERN.sub("_", text.strip().lower()).strip("_")
    return slug[:60].rstrip("_") or "risk_signal"


def risk_signal_type(text: str) -> str:
    """Signal type for a provider risk string, kept apart from engine-owned types."""
    slug = slugify_signal(text)
    return f"risk_{slug}" if slug in RESERVED_SIGNAL_TYPES else slug


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _contact_recency(days: int | None) -> tuple[float, list[Signal]]:
    if days is None:
        return 0.0, [
            Signal(
                type="contact_gap",
                severity=Severity.HIGH,
                title="Needs check-in",
                description="No recorded contact with this client",
            )
        ]

    days = max(days, 0)
    if days <= 7:
        return 1.0, []
    if days <= 14:
        return 0.8, []

    if days <= 21:
        value, severity, title = 0.5, Severity.MEDIUM, "Getting quiet"
    elif days <= 45:
        value, severity, title = 0.25, Severity.HIGH, "Needs check-in"
    else:
        value, severity, title = 0.0, Severity.HIGH, "Needs check-in"

    return value, [
        Signal(
            type="contact_gap",
            severity=severity,
            title=title,
            description=f"No contact in {days} days",
        )
    ]


def _commitments(items: Iterable[ActionItemInput]) -> tuple[float, list[Signal]]:
    overdue = sum(
        1
        for item in items
        if item.owner == "me" and item.status == "open" and item.days_overdue > 0
    )
    if overdue == 0:
        return 1.0, []

    return max(0.0, 1.0 - OVERDUE_PENALTY * overdue), [
        Signal(
            type="overdue_commitment",
            severity=Severity.HIGH if overdue >= 3 else Severity.MEDIUM,
            title=f"{overdue} overdue",
            description=f"You have {_plural(overdue, 'overdue commitment')}",
        )
    ]


def _note_sentiment(note: RecentNoteInput) -> float | None:
    if note.ai_status == "completed" and note.sentiment_score is not None:
        return note.sentiment_score
    if note.mood:
        return MOOD_SENTIMENT.get(note.mood.lower())
    return None


def _sentiment(notes: Iterable[RecentNoteInput]) -> tuple[float, list[Signal]]:
    values = [v for v in (_note_sentiment(note) for note in notes) if v is not None]
    average = sum(values) / len(values) if values else 0.0
    average = min(1.0, max(-1.0, average))
    component = (average + 1.0) / 2.0

    if average < -0.3:
        signal = Signal(
            type="negative_sentiment",
            severity=Severity.HIGH,
            title="Negative sentiment",
            description="Recent interactions show negative sentiment",
            evidence=f"Average sentiment {average:.2f} over {_plural(len(values), 'note')}",
        )
        return component, [signal]
    if average < -0.1:
        signal = Signal(
            type="negative_sentiment",
            severity=Severity.MEDIUM,
            title="Mixed sentiment",
            description="Recent interactions show mixed or cautious sentiment",
            evidence=f"Average sentiment {average:.2f} over {_plural(len(values), 'note')}",
        )
        return component, [signal]
    return component, []


def _risk(notes: Iterable[RecentNoteInput]) -> tuple[float, list[Signal]]:
    """
    Turn provider risk strings and raw concerns into weighed Signals.

    A risk type counts once per note. Every risk signal is weighed, only the
    most severe few are reported.
    """
    seen: dict[str, dict] = {}
    unanalyzed_concerns = 0

    for note in notes:
        if note.ai_status != "completed":
            if note.has_concerns:
                unanalyzed_concerns += 1
            continue

        sentiment = note.sentiment_score if note.sentiment_score is not None else 0.0
        note_risks: dict[str, str] = {}
        for raw in note.risk_signals:
            note_risks.setdefault(risk_signal_type(raw), raw)

        for slug, raw in note_risks.items():
            entry = seen.setdefault(slug, {"text": raw, "notes": 0, "min_sentiment": sentiment})
            entry["notes"] += 1
            entry["min_sentiment"] = min(entry["min_sentiment"], sentiment)

    signals = []
    for slug, entry in seen.items():
        if entry["notes"] >= 2 or entry["min_sentiment"] <= -0.6:
            severity = Severity.HIGH
        elif entry["min_sentiment"] < 0:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW
        signals.append(
            Signal(
                type=slug,
                severity=severity,
                title=slug.replace("_", " ").capitalize(),
                description=entry["text"][:100],
                evidence=f"Raised in {_plural(entry['notes'], 'recent note')}",
            )
        )

    if unanalyzed_concerns:
        signals.append(
            Signal(
                type="concerns_raised",
                severity=Severity.MEDIUM if unanalyzed_concerns >= 2 else Severity.LOW,
                title="Concerns raised",
                description=(
                    f"Explicit concerns noted in {_plural(unanalyzed_concerns, 'recent meeting')}"
                ),
            )
        )

    penalty = sum(RISK_SEVERITY_WEIGHTS[signal.severity] for signal in signals)
    signals.sort(key=lambda s: (_SEVERITY_RANK[s.severity], s.type))
    return max(0.0, 1.0 - penalty), signals[:MAX_REPORTED_RISK_SIGNALS]


def _meeting_frequency(last_30: int, previous_30: int) -> list[Signal]:
    if previous_30 < 2 or last_30 * 2 > previous_30:
        return []
    return [
        Signal(
            type="meeting_frequency_drop",
            severity=Severity.MEDIUM if last_30 == 0 else Severity.LOW,
            title="Meeting less often",
            description=(
                f"{_plural(last_30, 'meeting')} in the last 30 days, "
                f"down from {previous_30}"
            ),
        )
    ]


def score_client(inputs: ClientSignalInputs) -> HealthAssessment:
    """Derive score, status and signals for one client."""
    recency, recency_signals = _contact_recency(inputs.days_since_contact)
    commitments, commitment_signals = _commitments(inputs.action_items)
    sentiment, sentiment_signals = _sentiment(inputs.recent_notes)
    risk, risk_signals = _risk(inputs.recent_notes)

    components = {
        "contact_recency": recency,
        "commitments": commitments,
        "sentiment": sentiment,
        "risk": risk,
    }

    points = sum(WEIGHTS[name] * value for name, value in components.items())
    # Round away float noise before half-up rounding so 77.4999... scores as 78
    score = min(100, max(0, math.floor(round(points, 6) + 0.5)))

    signals = (
        recency_signals
        + commitment_signals
        + sentiment_signals
        + risk_signals
        + _meeting_frequency(inputs.notes_last_30_days, inputs.notes_previous_30_days)
    )

    return HealthAssessment(
        score=score,
        status=classify_score(score),
        signals=signals,
        components={name: round(value, 4) for name, value in components.items()},
    )
