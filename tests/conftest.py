import dataclasses
from datetime import UTC, datetime, timedelta

import pytest

from clientpulse.db.helpers import DatabaseError
from clientpulse.features.note_analysis.domain.models import (
    AnalysisJob,
    AnalysisResult,
    NoteForAnalysis,
    NoteStatus,
)
from clientpulse.features.note_analysis.pipeline.chain import ProviderChain, ProviderPolicy
from clientpulse.features.note_analysis.pipeline.state import ensure_transition
from clientpulse.features.note_analysis.pipeline.worker import AnalysisPipelineWorker
from clientpulse.features.note_analysis.providers.registry import PipelineConfig
from clientpulse.features.note_analysis.queue.base import Delivery, JobQueueError

TENANT = "tenant-1"
CLIENT = "client-1"


def make_analysis(**overrides) -> AnalysisResult:
    data = {
        "title": "Quarterly check-in",
        "summary": "Reviewed delivery status and next quarter plans.",
        "sentiment_score": 0.4,
        "topics": ["delivery", "planning"],
    }
    data.update(overrides)
    return AnalysisResult.model_validate(data)


class FakeNoteRepository:
    """In-memory note store with the same conditional-write rules as the SQL one."""

    def __init__(self):
        self.notes: dict[str, NoteForAnalysis] = {}
        self.analyses: dict[str, AnalysisResult] = {}
        self.errors: dict[str, str] = {}
        self.completions = 0
        self.fail_reads = False

    def add_note(
        self,
        note_id: str = "note-1",
        tenant_id: str = TENANT,
        client_id: str = CLIENT,
        status: NoteStatus = NoteStatus.PENDING,
        attempt: int = 0,
        claimed_at: datetime | None = None,
        requested_at: datetime | None = None,
        **fields,
    ) -> NoteForAnalysis:
        note = NoteForAnalysis(
            id=note_id,
            tenant_id=tenant_id,
            client_id=client_id,
            client_name="Acme Co",
            ai_status=status,
            ai_attempt=attempt,
            ai_claimed_at=claimed_at,
            ai_requested_at=requested_at or datetime.now(UTC) - timedelta(minutes=1),
            summary=fields.pop("summary", "Weekly sync"),
            **fields,
        )
        self.notes[note_id] = note
        return note

    def _owned(self, note_id: str, tenant_id: str) -> NoteForAnalysis | None:
        note = self.notes.get(note_id)
        if note is None or note.tenant_id != tenant_id:
            return None
        return note

    async def get_note_for_analysis(self, note_id, tenant_id):
        if self.fail_reads:
            raise DatabaseError("connection refused", operation="fetch_one")
        note = self._owned(note_id, tenant_id)
        return dataclasses.replace(note) if note else None

    async def claim_for_processing(self, note_id, tenant_id, attempt, lease_seconds):
        note = self._owned(note_id, tenant_id)
        if note is None:
            return False

        now = datetime.now(UTC)
        expired = note.ai_claimed_at is None or note.ai_claimed_at < now - timedelta(
            seconds=lease_seconds
        )
        claimable = note.ai_status == NoteStatus.PENDING or (
            note.ai_status == NoteStatus.PROCESSING
            and (note.ai_attempt < attempt or (note.ai_attempt == attempt and expired))
        )
        if claimable:
            note.ai_status = NoteStatus.PROCESSING
            note.ai_attempt = attempt
            note.ai_claimed_at = now
        return claimable

    async def compare_and_set_status(
        self,
        note_id,
        tenant_id,
        expected,
        target,
        *,
        attempt=None,
        analysis=None,
        error=None,
        requested_at=None,
    ):
        ensure_transition(expected, target)
        note = self._owned(note_id, tenant_id)
        if note is None or note.ai_status != expected:
            return False
        if expected == NoteStatus.PROCESSING and attempt is not None and note.ai_attempt != attempt:
            return False

        if target == NoteStatus.COMPLETED:
            self.analyses[note_id] = analysis
            self.errors.pop(note_id, None)
            self.completions += 1
        elif target == NoteStatus.FAILED:
            self.errors[note_id] = error
        elif target == NoteStatus.PENDING:
            self.errors.pop(note_id, None)
            note.ai_attempt = 0
            note.ai_claimed_at = None
            note.ai_requested_at = requested_at or datetime.now(UTC)

        note.ai_status = target
        return True

    async def reset_for_retry(self, note_id, tenant_id, requested_at=None):
        return await self.compare_and_set_status(
            note_id,
            tenant_id,
            NoteStatus.FAILED,
            NoteStatus.PENDING,
            requested_at=requested_at,
        )


class FakeJobQueue:
    def __init__(self):
        self.enqueued: list[tuple[AnalysisJob, float]] = []
        self.ready: list[Delivery] = []
        self.acked: list[Delivery] = []
        self.retried: list[Delivery] = []
        self.fail_enqueue = False

    async def enqueue(self, job, delay_seconds=0):
        if self.fail_enqueue:
            raise JobQueueError("redis unavailable", operation="enqueue")
        self.enqueued.append((job, delay_seconds))

    async def receive_batch(self, max_jobs, timeout_seconds):
        batch, self.ready = self.ready[:max_jobs], self.ready[max_jobs:]
        return batch

    async def ack(self, delivery):
        self.acked.append(delivery)

    async def retry(self, delivery):
        self.retried.append(delivery)


class ScriptedProvider:
    """Provider that plays back outcomes in order; the last one repeats."""

    def __init__(self, name: str, *outcomes):
        self.name = name
        self.outcomes = list(outcomes)
        self.calls = 0
        self.texts: list[str] = []

    async def analyze(self, note_text):
        self.calls += 1
        self.texts.append(note_text)
        outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeHealthService:
    def __init__(self, failures: int = 0):
        self.calls: list[tuple[str, str | None]] = []
        self.failures = failures

    async def recompute_client(self, client_id, tenant_id=None):
        self.calls.append((client_id, tenant_id))
        if len(self.calls) <= self.failures:
            raise DatabaseError("deadlock detected", operation="transaction")
        return None


class FakeRedisClient:
    """In-memory stand-in for the FastRedisClient list and sorted-set helpers."""

    def __init__(self):
        self.lists: dict[str, list[str]] = {}
        self.sorted_sets: dict[str, dict[str, float]] = {}
        self.fail_writes = False

    def _list(self, key):
        return self.lists.setdefault(key, [])

    async def push_to_list(self, key, value, left=True):
        if self.fail_writes:
            return False
        if left:
            self._list(key).insert(0, value)
        else:
            self._list(key).append(value)
        return True

    async def pop_to_inflight(self, source_key, inflight_key, timeout=0):
        source = self._list(source_key)
        if not source:
            return None
        value = source.pop()
        self._list(inflight_key).insert(0, value)
        return value

    async def ack_from_inflight(self, inflight_key, value):
        if self.fail_writes:
            return None
        inflight = self._list(inflight_key)
        if value in inflight:
            inflight.remove(value)
            return 1
        return 0

    async def requeue_from_inflight(self, inflight_key, destination_key, value):
        if self.fail_writes:
            return False
        await self.ack_from_inflight(inflight_key, value)
        self._list(destination_key).insert(0, value)
        return True

    async def list_range(self, key, start=0, end=-1):
        return list(self._list(key))

    async def add_to_sorted_set(self, key, value, score):
        if self.fail_writes:
            return False
        self.sorted_sets.setdefault(key, {})[value] = score
        return True

    async def move_due_to_list(self, sorted_key, list_key, max_score):
        members = self.sorted_sets.get(sorted_key, {})
        due = sorted((m for m, s in members.items() if s <= max_score), key=members.get)
        for member in due:
            del members[member]
            self._list(list_key).insert(0, member)
        return len(due)


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def make_chain(*policies_or_providers, sleep=None) -> ProviderChain:
    policies = [
        p if isinstance(p, ProviderPolicy) else ProviderPolicy(provider=p)
        for p in policies_or_providers
    ]
    return ProviderChain(policies, sleep=sleep or SleepRecorder())


def make_worker(chain, queue, repository, health_service=None, **config_overrides):
    config = PipelineConfig(
        chain=chain,
        max_attempts=config_overrides.pop("max_attempts", 3),
        max_concurrency=config_overrides.pop("max_concurrency", 5),
        requeue_backoff_seconds=config_overrides.pop("requeue_backoff_seconds", (120, 240, 480)),
        processing_lease_seconds=config_overrides.pop("processing_lease_seconds", 900),
    )
    return AnalysisPipelineWorker(
        config=config,
        queue=queue,
        health_service=health_service or FakeHealthService(),
        repository=repository,
        health_retry_delay_seconds=0,
    )


@pytest.fixture
def note_repo():
    return FakeNoteRepository()


@pytest.fixture
def job_queue():
    return FakeJobQueue()


@pytest.fixture
def health_service():
    return FakeHealthService()


@pytest.fixture
def tenant_headers():
    return {"X-Tenant-Id": TENANT}


class FakeConnectionContext:
    """Stands in for the context manager returned by get_db_connection/get_db_transaction."""

    def __init__(self, conn="conn"):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, *exc):
        return False
