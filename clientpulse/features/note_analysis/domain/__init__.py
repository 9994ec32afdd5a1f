"""
Domain subpackage for the note analysis feature.
"""

from .models import (
    ActionItemSuggestion,
    AnalysisJob,
    AnalysisResult,
    JobOutcome,
    NoteForAnalysis,
    NoteStatus,
    resolve_due_date,
)

__all__ = [
    "ActionItemSuggestion",
    "AnalysisJob",
    "AnalysisResult",
    "JobOutcome",
    "NoteForAnalysis",
    "NoteStatus",
    "resolve_due_date",
]
