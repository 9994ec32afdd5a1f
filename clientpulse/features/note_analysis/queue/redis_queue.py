"""
Redis-backed analysis job queue.

Keys (for the default ``clientpulse:analysis`` prefix):
    clientpulse:analysis            ready list (LPUSH in, RPOPLPUSH out)
    clientpulse:analysis:inflight   jobs received but not yet acknowledged
    clientpulse:analysis:delayed    sorted set scored by ready-at epoch seconds
"""

import time

from pydantic import ValidationError

from clientpulse.config import settings
from clientpulse.features.note_analysis.domain.models import AnalysisJob
from clientpulse.infrastructure.observability.logging import get_logger
from clientpulse.services.infrastructure.redis_client import FastRedisClient, fast_redis

from .base import Delivery, JobQueueError

logger = get_logger(__name__)


class RedisJobQueue:
    def __init__(self, redis_client: FastRedisClient | None = None, key: str | None = None):
        self.redis = redis_client or fast_redis
        self.key = key or settings.ANALYSIS_QUEUE_KEY
        self.inflight_key = f"{self.key}:inflight"
        self.delayed_key = f"{self.key}:delayed"

    async def enqueue(self, job: AnalysisJob, delay_seconds: float = 0) -> None:
        """
        Push a job, optionally delayed.

        Raises:
            JobQueueError: if Redis rejected the write.
        """
        payload = job.to_payload()
        if delay_seconds > 0:
            ok = await self.redis.add_to_sorted_set(
                self.delayed_key, payload, time.time() + delay_seconds
            )
        else:
            ok = await self.redis.push_to_list(self.key, payload)

        if not ok:
            raise JobQueueError(
                f"Failed to enqueue analysis job for note {job.note_id}", operation="enqueue"
            )

        logger.debug(
            "Analysis job enqueued",
            note_id=job.note_id,
            attempt=job.attempt,
            delay_seconds=delay_seconds,
        )

    async def promote_due(self) -> int:
        """Move delayed jobs whose time has come onto the ready list."""
        moved = await self.redis.move_due_to_list(self.delayed_key, self.key, time.time())
        if moved:
            logger.debug("Promoted delayed analysis jobs", count=moved)
        return moved

    async def receive_batch(self, max_jobs: int, timeout_seconds: int) -> list[Delivery]:
        """
        Receive up to ``max_jobs`` jobs.

        Blocks up to ``timeout_seconds`` for the first job only. Payloads that
        do not parse as jobs are logged and acknowledged.
        """
        await self.promote_due()

        deliveries: list[Delivery] = []
        while len(deliveries) < max_jobs:
            timeout = timeout_seconds if not deliveries else 0
            payload = await self.redis.pop_to_inflight(self.key, self.inflight_key, timeout=timeout)
            if payload is None:
                break

            try:
                job = AnalysisJob.from_payload(payload)
            except (ValidationError, ValueError) as e:
                logger.error(
                    "Dropping malformed analysis job payload",
                    payload_preview=payload[:100],
                    error=str(e),
                )
                await self.redis.ack_from_inflight(self.inflight_key, payload)
                continue

            deliveries.append(Delivery(job=job, payload=payload))

        return deliveries

    async def ack(self, delivery: Delivery) -> None:
        removed = await self.redis.ack_from_inflight(self.inflight_key, delivery.payload)
        if removed is None:
            raise JobQueueError(
                f"Failed to acknowledge analysis job for note {delivery.job.note_id}",
                operation="ack",
            )
        if not removed:
            logger.warning(
                "Acknowledged job was not in flight",
                note_id=delivery.job.note_id,
                attempt=delivery.job.attempt,
            )

    async def retry(self, delivery: Delivery) -> None:
        """Hand an unacknowledged job back to the ready list."""
        ok = await self.redis.requeue_from_inflight(
            self.inflight_key, self.key, delivery.payload
        )
        if not ok:
            raise JobQueueError(
                f"Failed to requeue analysis job for note {delivery.job.note_id}",
                operation="retry",
            )

    async def recover_inflight(self) -> int:
        """
        Move every in-flight payload back to the ready list.

        Called once when a consumer starts; with a single consumer process
        anything still in flight belongs to a crashed predecessor.
        """
        recovered = 0
        for payload in await self.redis.list_range(self.inflight_key):
            if await self.redis.requeue_from_inflight(self.inflight_key, self.key, payload):
                recovered += 1

        if recovered:
            logger.warning("Recovered in-flight analysis jobs", count=recovered)
        return recovered


analysis_queue = RedisJobQueue()
