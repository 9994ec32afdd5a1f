"""
Service layer for the note analysis feature.
"""

from .scheduler import (
    NoteNotFoundError,
    NoteNotRetryableError,
    enqueue_note_analysis,
    retry_failed_note,
)

__all__ = [
    "NoteNotFoundError",
    "NoteNotRetryableError",
    "enqueue_note_analysis",
    "retry_failed_note",
]
