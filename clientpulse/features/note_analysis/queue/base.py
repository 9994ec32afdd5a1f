"""
Job queue contract for analysis jobs.

Delivery is at-least-once: a received job stays owned by the consumer until
it is acknowledged or handed back with ``retry``.
"""

from dataclasses import dataclass
from typing import Protocol

from clientpulse.features.note_analysis.domain.models import AnalysisJob


class JobQueueError(Exception):
    """Queue transport failure."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@dataclass(frozen=True, slots=True)
class Delivery:
    """A received job plus the raw payload used to acknowledge it."""

    job: AnalysisJob
    payload: str


class JobQueue(Protocol):
    async def enqueue(self, job: AnalysisJob, delay_seconds: float = 0) -> None: ...

    async def receive_batch(self, max_jobs: int, timeout_seconds: int) -> list[Delivery]: ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def retry(self, delivery: Delivery) -> None: ...
