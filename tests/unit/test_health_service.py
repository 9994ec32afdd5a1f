from datetime import UTC, date, datetime

import pytest

from clientpulse.db.helpers import DatabaseError
from clientpulse.features.health_scoring.domain.models import (
    ClientSignalInputs,
    HealthSnapshot,
    HealthStatus,
    RecentNoteInput,
    Trend,
)
from clientpulse.features.health_scoring.jobs.recalculation_job import HealthRecalculationJob
from clientpulse.features.health_scoring.service import HealthScoringService

SAVED_AT = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


class FakeHealthRepository:
    def __init__(self):
        self.inputs: dict[str, ClientSignalInputs] = {}
        self.snapshots: dict[str, list[HealthSnapshot]] = {}
        self.saved: list[tuple] = []
        self.failing_clients: set[str] = set()

    def add_client(self, client_id="client-1", tenant_id="tenant-1", **fields):
        self.inputs[client_id] = ClientSignalInputs(
            client_id=client_id,
            tenant_id=tenant_id,
            days_since_contact=fields.pop("days_since_contact", 2),
            **fields,
        )

    async def fetch_client_signal_inputs(self, client_id, tenant_id=None):
        inputs = self.inputs.get(client_id)
        if inputs is None or (tenant_id is not None and inputs.tenant_id != tenant_id):
            return None
        return inputs

    async def fetch_latest_snapshot(self, client_id):
        history = self.snapshots.get(client_id)
        return history[-1] if history else None

    async def save_health(self, client_id, assessment, trend):
        if client_id in self.failing_clients:
            raise DatabaseError("could not serialize access", operation="transaction")
        self.saved.append((client_id, assessment, trend))
        self.snapshots.setdefault(client_id, []).append(
            HealthSnapshot(
                client_id=client_id,
                score=assessment.score,
                status=assessment.status,
                signals=assessment.signals,
                snapshot_date=date(2026, 10, 14),
                created_at=SAVED_AT,
            )
        )
        return SAVED_AT

    async def fetch_active_client_ids(self):
        return [(c.client_id, c.tenant_id) for c in self.inputs.values()]


@pytest.fixture
def repository():
    return FakeHealthRepository()


@pytest.fixture
def service(repository):
    return HealthScoringService(repository=repository, max_concurrency=2)


@pytest.mark.asyncio
async def test_recompute_saves_score_and_returns_health(repository, service):
    repository.add_client()

    health = await service.recompute_client("client-1", "tenant-1")

    assert health.score == 88
    assert health.status == HealthStatus.HEALTHY
    assert health.trend == Trend.STABLE
    assert health.updated_at == SAVED_AT
    assert len(repository.saved) == 1


@pytest.mark.asyncio
async def test_trend_compares_with_latest_snapshot(repository, service):
    repository.add_client()
    await service.recompute_client("client-1", "tenant-1")

    repository.add_client(
        recent_notes=(
            RecentNoteInput(
                ai_status="completed", sentiment_score=-0.4, risk_signals=("budget_mention",)
            ),
        )
    )
    health = await service.recompute_client("client-1", "tenant-1")

    assert health.score == 78
    assert health.status == HealthStatus.WATCH
    assert health.trend == Trend.DECLINING
    assert [s.score for s in repository.snapshots["client-1"]] == [88, 78]


@pytest.mark.asyncio
async def test_unchanged_inputs_keep_score_stable(repository, service):
    repository.add_client()

    first = await service.recompute_client("client-1")
    second = await service.recompute_client("client-1")

    assert first.score == second.score
    assert first.signals == second.signals
    assert second.trend == Trend.STABLE


@pytest.mark.asyncio
async def test_unknown_or_foreign_client_returns_none(repository, service):
    repository.add_client(tenant_id="tenant-1")

    assert await service.recompute_client("missing", "tenant-1") is None
    assert await service.recompute_client("client-1", "tenant-2") is None
    assert repository.saved == []


@pytest.mark.asyncio
async def test_save_failure_propagates(repository, service):
    repository.add_client()
    repository.failing_clients.add("client-1")

    with pytest.raises(DatabaseError):
        await service.recompute_client("client-1", "tenant-1")


@pytest.mark.asyncio
async def test_action_item_change_recomputes(repository, service):
    repository.add_client()

    health = await service.on_action_item_changed("client-1", "tenant-1")

    assert health.client_id == "client-1"
    assert len(repository.saved) == 1


@pytest.mark.asyncio
async def test_sweep_counts_failures_without_stopping(repository, service):
    repository.add_client("client-1")
    repository.add_client("client-2")
    repository.add_client("client-3")
    repository.failing_clients.add("client-2")

    metrics = await service.recompute_all()

    assert metrics["clients"] == 3
    assert metrics["updated"] == 2
    assert metrics["failed"] == 1
    assert metrics["skipped"] == 0
    assert {saved[0] for saved in repository.saved} == {"client-1", "client-3"}


@pytest.mark.asyncio
async def test_recalculation_job_records_last_run(repository, service):
    repository.add_client()
    job = HealthRecalculationJob(service=service)

    metrics = await job.run_once()
    status = job.get_job_status()

    assert metrics["updated"] == 1
    assert status["is_running"] is False
    assert status["last_run_time"] is not None
    assert status["last_run_metrics"] == metrics


@pytest.mark.asyncio
async def test_recalculation_job_skips_overlapping_run(service):
    job = HealthRecalculationJob(service=service)
    job.is_running = True

    result = await job.run_once()

    assert result == {"skipped": True, "reason": "already_running"}
