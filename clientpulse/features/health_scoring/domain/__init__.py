"""
Domain subpackage for the health scoring feature.
"""

from .models import (
    ActionItemInput,
    ClientSignalInputs,
    HealthAssessment,
    HealthScore,
    HealthSnapshot,
    HealthStatus,
    RecentNoteInput,
    Severity,
    Signal,
    Trend,
)

__all__ = [
    "ActionItemInput",
    "ClientSignalInputs",
    "HealthAssessment",
    "HealthScore",
    "HealthSnapshot",
    "HealthStatus",
    "RecentNoteInput",
    "Severity",
    "Signal",
    "Trend",
]
