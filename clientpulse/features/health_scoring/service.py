"""
Client health scoring service.

Recomputes a client's health from stored inputs and persists it. Runs after
a note analysis completes, when an action item changes, and in the
scheduled sweep over every active client.
"""

import asyncio
import time

from clientpulse.config import settings
from clientpulse.infrastructure.observability.logging import get_logger

from .domain.models import HealthScore
from .engine import compute_trend, score_client
from .repository import HealthScoringRepository

logger = get_logger(__name__)


class HealthScoringService:
    def __init__(self, repository=HealthScoringRepository, max_concurrency: int | None = None):
        self.repository = repository
        self.max_concurrency = max_concurrency or settings.HEALTH_RECALC_MAX_CONCURRENCY

    async def recompute_client(
        self, client_id: str, tenant_id: str | None = None
    ) -> HealthScore | None:
        """
        Score one client and save the result.

        Returns None when the client does not exist (or belongs to another
        tenant). Errors propagate; nothing is written unless the snapshot and
        the client update both succeed, so the stored score stays intact.
        """
        inputs = await self.repository.fetch_client_signal_inputs(client_id, tenant_id)
        if inputs is None:
            logger.warning("Health recompute skipped, client not found", client_id=client_id)
            return None

        assessment = score_client(inputs)
        latest = await self.repository.fetch_latest_snapshot(client_id)
        trend = compute_trend(assessment.score, latest.score if latest else None)

        updated_at = await self.repository.save_health(client_id, assessment, trend)

        logger.info(
            "Client health recomputed",
            client_id=client_id,
            score=assessment.score,
            status=assessment.status.value,
            trend=trend.value,
            signal_count=len(assessment.signals),
        )

        return HealthScore(
            client_id=client_id,
            score=assessment.score,
            status=assessment.status,
            signals=assessment.signals,
            trend=trend,
            updated_at=updated_at,
        )

    async def on_action_item_changed(self, client_id: str, tenant_id: str) -> HealthScore | None:
        """Hook for action item create/complete/delete."""
        return await self.recompute_client(client_id, tenant_id)

    async def recompute_all(self) -> dict:
        """
        Recompute every active client with bounded concurrency.

        Per-client failures are logged and counted; they never stop the sweep.
        """
        start = time.time()
        clients = await self.repository.fetch_active_client_ids()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _recompute(client_id: str, tenant_id: str) -> bool | None:
            async with semaphore:
                try:
                    return await self.recompute_client(client_id, tenant_id) is not None
                except Exception as e:
                    logger.error(
                        "Health recompute failed",
                        client_id=client_id,
                        tenant_id=tenant_id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    return None

        results = await asyncio.gather(*(_recompute(c, t) for c, t in clients))

        metrics = {
            "clients": len(clients),
            "updated": sum(1 for r in results if r is True),
            "skipped": sum(1 for r in results if r is False),
            "failed": sum(1 for r in results if r is None),
            "duration_seconds": round(time.time() - start, 2),
        }
        logger.info("Health recalculation sweep finished", **metrics)
        return metrics


health_scoring_service = HealthScoringService()
