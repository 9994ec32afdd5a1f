"""
Health check endpoints for the internal API and its dependencies.
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from clientpulse.config import settings
from clientpulse.db.pool import db_health_check
from clientpulse.infrastructure.observability.logging import log_health_check
from clientpulse.services.infrastructure.redis_client import redis_ping

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "clientpulse"}


@router.get("/readyz")
async def readyz():
    """Readiness check covering Redis, the database pool and provider configuration."""
    checks = {}
    overall_ok = True

    # 1) Redis (analysis queue)
    t0 = time.time()
    try:
        redis_ok = await redis_ping()
        latency_ms = round((time.time() - t0) * 1000, 1)
        checks["redis"] = {"ok": bool(redis_ok), "latency_ms": latency_ms}
        log_health_check("redis", bool(redis_ok), latency_ms)
        overall_ok = overall_ok and bool(redis_ok)
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}
        log_health_check("redis", False, round((time.time() - t0) * 1000, 1), str(e))
        overall_ok = False

    # 2) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)
        latency_ms = round((time.time() - t0) * 1000, 1)

        checks["database"] = {"ok": is_healthy, "latency_ms": latency_ms}
        if "pool_stats" in db_health:
            checks["database"]["pool_stats"] = db_health["pool_stats"]
        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")

        log_health_check("database", is_healthy, latency_ms, db_health.get("error"))
        overall_ok = overall_ok and is_healthy
    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 3) At least one analysis provider configured
    configured = [
        name
        for name in settings.provider_order()
        if (name == "openai" and settings.OPENAI_API_KEY)
        or (name == "gemini" and settings.GEMINI_API_KEY)
    ]
    checks["providers"] = {
        "ok": bool(configured),
        "configured": configured,
        "environment": settings.environment,
    }
    overall_ok = overall_ok and bool(configured)

    body = {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}
    return JSONResponse(status_code=200 if overall_ok else 503, content=body)
