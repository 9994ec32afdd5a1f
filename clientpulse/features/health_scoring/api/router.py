"""
Health scoring routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from clientpulse.auth.tenant import tenant_dependency
from clientpulse.features.health_scoring.domain.models import HealthScore
from clientpulse.features.health_scoring.service import health_scoring_service
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/clients", tags=["health-scoring"])


@router.post("/{client_id}/health/recalculate", response_model=HealthScore)
async def recalculate_client_health(
    client_id: str, tenant_id: str = Depends(tenant_dependency)
) -> HealthScore:
    try:
        health = await health_scoring_service.recompute_client(client_id, tenant_id)
    except Exception as e:
        logger.error(
            "Health recalculation request failed",
            client_id=client_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Health could not be recalculated; the previous score is unchanged",
        ) from e

    if health is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found")
    return health
