"""
Scheduled full health recalculation.

Recomputes every active client on a fixed interval so clients without new
notes still drift as contact gaps grow and commitments go overdue, and so a
recompute that failed after an analysis is eventually caught up.
"""

import asyncio
from datetime import UTC, datetime

from clientpulse.config import settings
from clientpulse.features.health_scoring.service import (
    HealthScoringService,
    health_scoring_service,
)
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_RETRY_SECONDS = 60


class HealthRecalculationJob:
    def __init__(self, service: HealthScoringService | None = None):
        self.service = service or health_scoring_service
        self.is_running = False
        self.last_run_time: datetime | None = None
        self.last_metrics: dict | None = None

    async def run_once(self) -> dict:
        if self.is_running:
            logger.warning("Health recalculation already running, skipping this iteration")
            return {"skipped": True, "reason": "already_running"}

        try:
            self.is_running = True
            logger.info("Starting health recalculation")
            metrics = await self.service.recompute_all()
            self.last_run_time = datetime.now(UTC)
            self.last_metrics = metrics
            return metrics
        finally:
            self.is_running = False

    def get_job_status(self) -> dict:
        return {
            "job_name": "health_recalculation",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time.isoformat() if self.last_run_time else None,
            "interval_hours": settings.HEALTH_RECALC_INTERVAL_HOURS,
            "last_run_metrics": self.last_metrics,
        }


health_recalculation_job = HealthRecalculationJob()


async def start_health_recalculation_scheduler() -> None:
    """Run the recalculation now and then every HEALTH_RECALC_INTERVAL_HOURS."""
    interval_seconds = settings.HEALTH_RECALC_INTERVAL_HOURS * 3600
    logger.info(
        "Starting health recalculation scheduler",
        interval_hours=settings.HEALTH_RECALC_INTERVAL_HOURS,
    )

    while True:
        try:
            await health_recalculation_job.run_once()
            await asyncio.sleep(interval_seconds)
        except Exception as e:
            logger.error(
                "Error in health recalculation scheduler",
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(ERROR_RETRY_SECONDS)
