"""
Analysis pipeline worker.

Consumes AnalysisJobs and drives each note through
pending -> processing -> completed | failed. Deliveries are at-least-once, so
every note write is conditional and a job that finds its note already
settled, superseded or stale is acknowledged without side effects.
"""

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from clientpulse.features.note_analysis.domain.models import (
    AnalysisJob,
    JobOutcome,
    NoteForAnalysis,
    NoteStatus,
    utc_now,
)
from clientpulse.features.note_analysis.providers.prompt import synthesize_note_text
from clientpulse.features.note_analysis.providers.registry import PipelineConfig
from clientpulse.features.note_analysis.queue.base import JobQueue
from clientpulse.features.note_analysis.repository.note_repository import (
    NoteAnalysisRepository,
)
from clientpulse.infrastructure.observability.logging import get_logger

from .chain import ProviderChainExhaustedError
from .state import ACTIONABLE_STATUSES

logger = get_logger(__name__)

# Clock skew allowed between the producer stamping a job and the database
# stamping ai_requested_at
STALE_JOB_TOLERANCE = timedelta(seconds=30)
HEALTH_RECOMPUTE_ATTEMPTS = 3


class HealthRecomputer(Protocol):
    async def recompute_client(self, client_id: str, tenant_id: str | None = None): ...


class AnalysisPipelineWorker:
    """Process analysis jobs against the note store and provider chain."""

    def __init__(
        self,
        config: PipelineConfig,
        queue: JobQueue,
        health_service: HealthRecomputer,
        repository=NoteAnalysisRepository,
        clock: Callable[[], datetime] = utc_now,
        health_retry_delay_seconds: float = 1.0,
    ):
        self.config = config
        self.queue = queue
        self.health_service = health_service
        self.repository = repository
        self._clock = clock
        self._health_retry_delay = health_retry_delay_seconds

    async def handle_batch(self, jobs: Sequence[AnalysisJob]) -> list[JobOutcome]:
        """Process jobs concurrently; outcomes are returned in input order."""
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def _bounded(job: AnalysisJob) -> JobOutcome:
            async with semaphore:
                return await self.process_job(job)

        results = await asyncio.gather(*(_bounded(job) for job in jobs), return_exceptions=True)

        outcomes = []
        for job, result in zip(jobs, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "Analysis job crashed",
                    note_id=job.note_id,
                    attempt=job.attempt,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                outcomes.append(JobOutcome(job=job, ack=False, reason="crashed"))
            else:
                outcomes.append(result)
        return outcomes

    async def process_job(self, job: AnalysisJob) -> JobOutcome:
        try:
            note = await self.repository.get_note_for_analysis(job.note_id, job.tenant_id)
        except Exception as e:
            logger.error(
                "Failed to load note for analysis",
                note_id=job.note_id,
                attempt=job.attempt,
                error=str(e),
            )
            return JobOutcome(job=job, ack=False, reason="note_read_failed")

        if note is None:
            # Missing, deleted, or owned by another tenant
            logger.warning(
                "Dropping analysis job for unknown note",
                note_id=job.note_id,
                tenant_id=job.tenant_id,
            )
            return JobOutcome(job=job, ack=True, reason="note_not_found")

        try:
            skip_reason = self._skip_reason(note, job)
            if skip_reason == "lease_held":
                return await self._defer_until_lease_expires(note, job)
            if skip_reason:
                logger.info(
                    "Skipping analysis job",
                    note_id=job.note_id,
                    attempt=job.attempt,
                    reason=skip_reason,
                    ai_status=note.ai_status.value,
                )
                return JobOutcome(job=job, ack=True, reason=skip_reason)

            claimed = await self.repository.claim_for_processing(
                job.note_id, job.tenant_id, job.attempt, self.config.processing_lease_seconds
            )
            if not claimed:
                logger.info("Lost claim race for note", note_id=job.note_id, attempt=job.attempt)
                return JobOutcome(job=job, ack=True, reason="claim_lost")

            try:
                success = await self.config.chain.run(
                    synthesize_note_text(note), start_at=job.provider
                )
            except ProviderChainExhaustedError as e:
                return await self._handle_exhausted(job, e)

            applied = await self.repository.compare_and_set_status(
                job.note_id,
                job.tenant_id,
                NoteStatus.PROCESSING,
                NoteStatus.COMPLETED,
                attempt=job.attempt,
                analysis=success.result,
            )
            if not applied:
                logger.info(
                    "Analysis result discarded, note moved on",
                    note_id=job.note_id,
                    attempt=job.attempt,
                )
                return JobOutcome(job=job, ack=True, reason="superseded")

            logger.info(
                "Note analysis completed",
                note_id=job.note_id,
                attempt=job.attempt,
                provider=success.provider,
                provider_calls=success.calls,
            )

            await self._recompute_health(note.client_id, job.tenant_id)
            return JobOutcome(job=job, ack=True, reason="completed")

        except Exception as e:
            logger.error(
                "Unexpected error processing analysis job",
                note_id=job.note_id,
                attempt=job.attempt,
                error=str(e),
                error_type=type(e).__name__,
            )
            return JobOutcome(job=job, ack=False, reason="unexpected_error")

    def _skip_reason(self, note: NoteForAnalysis, job: AnalysisJob) -> str | None:
        if note.ai_status not in ACTIONABLE_STATUSES:
            return "already_settled"

        if note.ai_requested_at and job.enqueued_at < note.ai_requested_at - STALE_JOB_TOLERANCE:
            return "stale"

        if note.ai_status == NoteStatus.PROCESSING:
            if note.ai_attempt > job.attempt:
                return "superseded"
            if note.ai_attempt == job.attempt and not self._lease_expired(note):
                return "lease_held"

        return None

    def _lease_expired(self, note: NoteForAnalysis) -> bool:
        if note.ai_claimed_at is None:
            return True
        lease = timedelta(seconds=self.config.processing_lease_seconds)
        return note.ai_claimed_at + lease <= self._clock()

    async def _defer_until_lease_expires(
        self, note: NoteForAnalysis, job: AnalysisJob
    ) -> JobOutcome:
        """
        Another delivery of this attempt holds the note. Check back once its
        lease has run out; by then it has either settled or died.
        """
        lease = timedelta(seconds=self.config.processing_lease_seconds)
        remaining = (note.ai_claimed_at + lease - self._clock()).total_seconds()
        delay = max(remaining, 1.0)

        try:
            await self.queue.enqueue(job, delay_seconds=delay)
        except Exception as e:
            logger.error(
                "Failed to defer analysis job", note_id=job.note_id, attempt=job.attempt, error=str(e)
            )
            return JobOutcome(job=job, ack=False, reason="defer_failed")

        logger.info(
            "Note claimed by another delivery, deferring",
            note_id=job.note_id,
            attempt=job.attempt,
            delay_seconds=round(delay, 1),
        )
        return JobOutcome(job=job, ack=True, reason="deferred")

    async def _handle_exhausted(
        self, job: AnalysisJob, error: ProviderChainExhaustedError
    ) -> JobOutcome:
        if job.attempt < self.config.max_attempts:
            next_job = job.next_attempt(provider=error.restart_provider)
            delay = self.config.requeue_delay(job.attempt)
            try:
                await self.queue.enqueue(next_job, delay_seconds=delay)
            except Exception as e:
                logger.error(
                    "Failed to requeue analysis job",
                    note_id=job.note_id,
                    attempt=job.attempt,
                    error=str(e),
                )
                return JobOutcome(job=job, ack=False, reason="requeue_failed")

            logger.warning(
                "Analysis attempt failed, requeued",
                note_id=job.note_id,
                attempt=job.attempt,
                next_attempt=next_job.attempt,
                start_provider=next_job.provider,
                delay_seconds=delay,
                error_kind=error.last_error.kind.value,
            )
            return JobOutcome(job=job, ack=True, reason="requeued")

        message = f"Analysis failed after {job.attempt} attempts: {error.public_message}"
        failed = await self.repository.compare_and_set_status(
            job.note_id,
            job.tenant_id,
            NoteStatus.PROCESSING,
            NoteStatus.FAILED,
            attempt=job.attempt,
            error=message,
        )
        if not failed:
            return JobOutcome(job=job, ack=True, reason="superseded")

        logger.error(
            "Note analysis failed permanently",
            note_id=job.note_id,
            attempts=job.attempt,
            error_kind=error.last_error.kind.value,
            provider=error.last_error.provider,
        )
        return JobOutcome(job=job, ack=True, reason="failed")

    async def _recompute_health(self, client_id: str, tenant_id: str) -> bool:
        for attempt in range(1, HEALTH_RECOMPUTE_ATTEMPTS + 1):
            try:
                await self.health_service.recompute_client(client_id, tenant_id)
                return True
            except Exception as e:
                logger.warning(
                    "Health recompute after analysis failed",
                    client_id=client_id,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < HEALTH_RECOMPUTE_ATTEMPTS:
                    await asyncio.sleep(self._health_retry_delay * attempt)

        # The scheduled sweep picks the client up later
        logger.error(
            "Giving up on health recompute after analysis",
            client_id=client_id,
            attempts=HEALTH_RECOMPUTE_ATTEMPTS,
        )
        return False
