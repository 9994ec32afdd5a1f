"""
Note analysis routes: manual re-trigger for notes whose analysis failed.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from clientpulse.auth.tenant import tenant_dependency
from clientpulse.db.helpers import DatabaseError
from clientpulse.features.note_analysis.queue.base import JobQueueError
from clientpulse.features.note_analysis.services.scheduler import (
    NoteNotFoundError,
    NoteNotRetryableError,
    retry_failed_note,
)
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/notes", tags=["note-analysis"])


@router.post("/{note_id}/retry-analysis", status_code=status.HTTP_202_ACCEPTED)
async def retry_note_analysis(note_id: str, tenant_id: str = Depends(tenant_dependency)) -> dict:
    """Move a failed note back to pending and queue a fresh analysis."""
    try:
        job = await retry_failed_note(note_id, tenant_id)
    except NoteNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found") from e
    except NoteNotRetryableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except (JobQueueError, DatabaseError) as e:
        logger.error("Retry analysis failed", note_id=note_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis could not be queued, try again shortly",
        ) from e

    return {"note_id": note_id, "ai_status": "pending", "attempt": job.attempt}
