"""
Job runners for the note analysis feature.
"""

from .analysis_job import start_note_analysis_consumer

__all__ = ["start_note_analysis_consumer"]
