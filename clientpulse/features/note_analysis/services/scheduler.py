"""
Note analysis scheduling helpers.

``enqueue_note_analysis`` is called right after a note is created and must
never block or fail note creation. ``retry_failed_note`` backs the manual
re-trigger for notes whose analysis failed.
"""

from clientpulse.features.note_analysis.domain.models import AnalysisJob, NoteStatus, utc_now
from clientpulse.features.note_analysis.queue.base import JobQueue
from clientpulse.features.note_analysis.queue.redis_queue import analysis_queue
from clientpulse.features.note_analysis.repository.note_repository import (
    NoteAnalysisRepository,
)
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class NoteNotFoundError(Exception):
    def __init__(self, note_id: str):
        super().__init__(f"Note {note_id} not found")
        self.note_id = note_id


class NoteNotRetryableError(Exception):
    """Raised when a re-trigger is requested for a note that has not failed."""

    def __init__(self, note_id: str, status: NoteStatus | None):
        state = status.value if status else "unknown"
        super().__init__(f"Note {note_id} is {state}; only failed notes can be retried")
        self.note_id = note_id
        self.status = status


async def enqueue_note_analysis(
    note_id: str, tenant_id: str, queue: JobQueue | None = None
) -> bool:
    """
    Fire-and-forget enqueue of the first analysis attempt.

    Returns:
        bool: True if the job was accepted by the queue.
    """
    queue = queue or analysis_queue
    try:
        await queue.enqueue(AnalysisJob(note_id=note_id, tenant_id=tenant_id, attempt=1))
        return True
    except Exception as e:
        logger.error(
            "Failed to enqueue note analysis",
            note_id=note_id,
            tenant_id=tenant_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


async def retry_failed_note(
    note_id: str,
    tenant_id: str,
    queue: JobQueue | None = None,
    repository=NoteAnalysisRepository,
) -> AnalysisJob:
    """
    Move a failed note back to pending and enqueue a fresh first attempt.

    Raises:
        NoteNotFoundError: if the tenant has no such note.
        NoteNotRetryableError: if the note is not in the failed state.
        JobQueueError: if the job could not be enqueued.
    """
    queue = queue or analysis_queue

    note = await repository.get_note_for_analysis(note_id, tenant_id)
    if note is None:
        raise NoteNotFoundError(note_id)
    if note.ai_status != NoteStatus.FAILED:
        raise NoteNotRetryableError(note_id, note.ai_status)

    requested_at = utc_now()
    if not await repository.reset_for_retry(note_id, tenant_id, requested_at):
        # Another request re-triggered it first
        raise NoteNotRetryableError(note_id, None)

    job = AnalysisJob(note_id=note_id, tenant_id=tenant_id, attempt=1, enqueued_at=requested_at)
    try:
        await queue.enqueue(job)
    except Exception:
        logger.error(
            "Note reset to pending but retry job was not enqueued",
            note_id=note_id,
            tenant_id=tenant_id,
        )
        raise

    logger.info("Note analysis re-triggered", note_id=note_id, tenant_id=tenant_id)
    return job
