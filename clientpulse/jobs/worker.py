"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, opens the resources that job needs and delegates to its
scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from clientpulse.config import settings
from clientpulse.db.pool import db_pool
from clientpulse.features.health_scoring.jobs.recalculation_job import (
    start_health_recalculation_scheduler,
)
from clientpulse.features.note_analysis.jobs.analysis_job import start_note_analysis_consumer
from clientpulse.infrastructure.observability.logging import get_logger, setup_logging
from clientpulse.services.infrastructure.redis_client import fast_redis

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "note_analysis": start_note_analysis_consumer,
    "health_recalculation": start_health_recalculation_scheduler,
}

# Jobs that consume the analysis queue also need Redis
REDIS_JOBS = {"note_analysis"}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "note_analysis").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)

    await db_pool.initialize()
    try:
        if name in REDIS_JOBS:
            await fast_redis.initialize()
        await JOB_REGISTRY[name]()
    finally:
        if name in REDIS_JOBS:
            await fast_redis.close()
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
