import importlib
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from clientpulse.db.helpers import DatabaseError
from clientpulse.features.health_scoring.domain.models import HealthScore, HealthStatus, Trend
from clientpulse.features.note_analysis.domain.models import AnalysisJob, NoteStatus
from clientpulse.features.note_analysis.queue.base import JobQueueError
from clientpulse.features.note_analysis.services.scheduler import (
    NoteNotFoundError,
    NoteNotRetryableError,
)
from clientpulse.main import app
from clientpulse.routes import health

client = TestClient(app)

# The api packages re-export their APIRouter under the module name
note_analysis_api = importlib.import_module("clientpulse.features.note_analysis.api.router")
health_scoring_api = importlib.import_module("clientpulse.features.health_scoring.api.router")

HEADERS = {"X-Tenant-Id": "tenant-1"}


def test_healthz():
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "clientpulse"}


def test_readyz_ok(monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", "sk-test")
    with (
        patch("clientpulse.routes.health.redis_ping", return_value=True),
        patch(
            "clientpulse.routes.health.db_health_check",
            return_value={"healthy": True, "pool_stats": {"pool_size": 2}},
        ),
    ):
        r = client.get("/readyz")

    assert r.status_code == 200
    data = r.json()
    assert data["overall_ok"] is True
    assert data["checks"]["redis"]["ok"] is True
    assert data["checks"]["database"]["pool_stats"] == {"pool_size": 2}
    assert "openai" in data["checks"]["providers"]["configured"]


def test_readyz_fails_when_database_down(monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", "sk-test")
    with (
        patch("clientpulse.routes.health.redis_ping", return_value=True),
        patch(
            "clientpulse.routes.health.db_health_check",
            return_value={"healthy": False, "error": "pool exhausted"},
        ),
    ):
        r = client.get("/readyz")

    assert r.status_code == 503
    assert r.json()["checks"]["database"]["error"] == "pool exhausted"


def test_readyz_fails_without_providers(monkeypatch):
    monkeypatch.setattr(health.settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(health.settings, "GEMINI_API_KEY", None)
    with (
        patch("clientpulse.routes.health.redis_ping", side_effect=ConnectionError("refused")),
        patch("clientpulse.routes.health.db_health_check", return_value={"healthy": True}),
    ):
        r = client.get("/readyz")

    assert r.status_code == 503
    checks = r.json()["checks"]
    assert checks["redis"]["ok"] is False
    assert checks["providers"] == {
        "ok": False,
        "configured": [],
        "environment": health.settings.environment,
    }


def test_retry_requires_tenant():
    r = client.post("/notes/note-1/retry-analysis")
    assert r.status_code == 401


def test_retry_accepted(monkeypatch):
    job = AnalysisJob(note_id="note-1", tenant_id="tenant-1", attempt=1)
    retry = AsyncMock(return_value=job)
    monkeypatch.setattr(note_analysis_api, "retry_failed_note", retry)

    r = client.post("/notes/note-1/retry-analysis", headers=HEADERS)

    assert r.status_code == 202
    assert r.json() == {"note_id": "note-1", "ai_status": "pending", "attempt": 1}
    retry.assert_awaited_once_with("note-1", "tenant-1")


def test_retry_unknown_note(monkeypatch):
    monkeypatch.setattr(
        note_analysis_api, "retry_failed_note", AsyncMock(side_effect=NoteNotFoundError("x"))
    )

    r = client.post("/notes/x/retry-analysis", headers=HEADERS)

    assert r.status_code == 404


def test_retry_note_not_failed(monkeypatch):
    monkeypatch.setattr(
        note_analysis_api,
        "retry_failed_note",
        AsyncMock(side_effect=NoteNotRetryableError("note-1", NoteStatus.COMPLETED)),
    )

    r = client.post("/notes/note-1/retry-analysis", headers=HEADERS)

    assert r.status_code == 409
    assert "completed" in r.json()["detail"]


def test_retry_queue_unavailable(monkeypatch):
    monkeypatch.setattr(
        note_analysis_api,
        "retry_failed_note",
        AsyncMock(side_effect=JobQueueError("redis down", operation="enqueue")),
    )

    r = client.post("/notes/note-1/retry-analysis", headers=HEADERS)

    assert r.status_code == 503


def test_recalculate_health(monkeypatch):
    score = HealthScore(
        client_id="client-1",
        score=78,
        status=HealthStatus.WATCH,
        trend=Trend.DECLINING,
        updated_at=datetime(2026, 10, 14, 12, 0, tzinfo=UTC),
    )
    recompute = AsyncMock(return_value=score)
    monkeypatch.setattr(health_scoring_api.health_scoring_service, "recompute_client", recompute)

    r = client.post("/clients/client-1/health/recalculate", headers=HEADERS)

    assert r.status_code == 200
    body = r.json()
    assert body["score"] == 78
    assert body["status"] == "watch"
    assert body["trend"] == "declining"
    recompute.assert_awaited_once_with("client-1", "tenant-1")


def test_recalculate_unknown_client(monkeypatch):
    monkeypatch.setattr(
        health_scoring_api.health_scoring_service,
        "recompute_client",
        AsyncMock(return_value=None),
    )

    r = client.post("/clients/missing/health/recalculate", headers=HEADERS)

    assert r.status_code == 404


def test_recalculate_failure_keeps_previous_score(monkeypatch):
    monkeypatch.setattr(
        health_scoring_api.health_scoring_service,
        "recompute_client",
        AsyncMock(side_effect=DatabaseError("deadlock", operation="transaction")),
    )

    r = client.post("/clients/client-1/health/recalculate", headers=HEADERS)

    assert r.status_code == 503
    assert "unchanged" in r.json()["detail"]
