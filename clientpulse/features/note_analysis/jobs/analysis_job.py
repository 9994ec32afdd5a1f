"""
Note analysis consumer.

Pulls batches from the analysis queue, hands them to the pipeline worker
and settles each delivery: acknowledged outcomes leave the in-flight list,
the rest go back to the ready list for redelivery.
"""

import asyncio
from datetime import UTC, datetime

from clientpulse.config import settings
from clientpulse.features.health_scoring.service import health_scoring_service
from clientpulse.features.note_analysis.pipeline.worker import AnalysisPipelineWorker
from clientpulse.features.note_analysis.providers.registry import build_pipeline_config
from clientpulse.features.note_analysis.queue.base import Delivery, JobQueue, JobQueueError
from clientpulse.features.note_analysis.queue.redis_queue import RedisJobQueue
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Pause after a batch that handed jobs back, so a dependency outage does not
# turn into a hot redelivery loop
REDELIVERY_PAUSE_SECONDS = 5
ERROR_RETRY_SECONDS = 10


class AnalysisConsumerMetrics:
    """Running totals for the consumer process."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.start_time = datetime.now(UTC)
        self.batches = 0
        self.received = 0
        self.acked = 0
        self.redelivered = 0
        self.queue_errors = 0
        self.reasons: dict[str, int] = {}

    def record(self, reason: str, acked: bool):
        self.reasons[reason] = self.reasons.get(reason, 0) + 1
        if acked:
            self.acked += 1
        else:
            self.redelivered += 1

    def to_dict(self) -> dict:
        return {
            "job_run": "note_analysis",
            "start_time": self.start_time.isoformat(),
            "batches": self.batches,
            "received": self.received,
            "acked": self.acked,
            "redelivered": self.redelivered,
            "queue_errors": self.queue_errors,
            "reasons": dict(sorted(self.reasons.items())),
        }


class NoteAnalysisConsumer:
    def __init__(
        self,
        worker: AnalysisPipelineWorker,
        queue: JobQueue,
        batch_size: int | None = None,
        receive_timeout_seconds: int | None = None,
    ):
        self.worker = worker
        self.queue = queue
        self.batch_size = batch_size or settings.ANALYSIS_BATCH_SIZE
        self.receive_timeout = (
            receive_timeout_seconds
            if receive_timeout_seconds is not None
            else settings.ANALYSIS_RECEIVE_TIMEOUT_SECONDS
        )
        self.metrics = AnalysisConsumerMetrics()

    async def run_once(self) -> dict:
        """
        Receive and process one batch.

        Returns:
            Dict: counts for this batch (received, acked, redelivered).
        """
        deliveries = await self.queue.receive_batch(self.batch_size, self.receive_timeout)
        if not deliveries:
            return {"received": 0, "acked": 0, "redelivered": 0}

        self.metrics.batches += 1
        self.metrics.received += len(deliveries)

        outcomes = await self.worker.handle_batch([d.job for d in deliveries])

        acked = redelivered = 0
        for delivery, outcome in zip(deliveries, outcomes, strict=True):
            self.metrics.record(outcome.reason, outcome.ack)
            if await self._settle(delivery, outcome.ack):
                if outcome.ack:
                    acked += 1
                else:
                    redelivered += 1

        batch = {"received": len(deliveries), "acked": acked, "redelivered": redelivered}
        logger.info("Analysis batch processed", **batch)
        return batch

    async def _settle(self, delivery: Delivery, ack: bool) -> bool:
        try:
            if ack:
                await self.queue.ack(delivery)
            else:
                await self.queue.retry(delivery)
            return True
        except JobQueueError as e:
            # Left in flight; recovered on the next consumer start
            self.metrics.queue_errors += 1
            logger.error(
                "Failed to settle analysis delivery",
                note_id=delivery.job.note_id,
                attempt=delivery.job.attempt,
                ack=ack,
                error=str(e),
            )
            return False

    async def run_forever(self) -> None:
        logger.info(
            "Note analysis consumer started",
            batch_size=self.batch_size,
            receive_timeout_seconds=self.receive_timeout,
        )
        while True:
            try:
                batch = await self.run_once()
                if batch["redelivered"]:
                    await asyncio.sleep(REDELIVERY_PAUSE_SECONDS)
            except Exception as e:
                logger.error(
                    "Error in note analysis consumer",
                    error=str(e),
                    error_type=type(e).__name__,
                    **self.metrics.to_dict(),
                )
                await asyncio.sleep(ERROR_RETRY_SECONDS)


def build_consumer() -> NoteAnalysisConsumer:
    queue = RedisJobQueue()
    worker = AnalysisPipelineWorker(
        config=build_pipeline_config(settings),
        queue=queue,
        health_service=health_scoring_service,
    )
    return NoteAnalysisConsumer(worker=worker, queue=queue)


async def start_note_analysis_consumer() -> None:
    """Entry point for the note analysis worker process."""
    consumer = build_consumer()
    await consumer.queue.recover_inflight()
    await consumer.run_forever()
