"""
Note analysis feature package.

Every layer of the AI enrichment pipeline lives here: domain models,
provider adapters, the provider chain and worker, the job queue, the note
repository, scheduling helpers and the consumer job.
"""

# Re-export the primary building blocks for easy access.
from .domain.models import AnalysisJob, AnalysisResult, NoteStatus  # noqa: F401
from .jobs.analysis_job import start_note_analysis_consumer  # noqa: F401
from .services.scheduler import enqueue_note_analysis, retry_failed_note  # noqa: F401
