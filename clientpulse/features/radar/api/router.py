"""
Radar dashboard routes.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from clientpulse.auth.tenant import tenant_dependency
from clientpulse.features.radar.service import radar_service
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/radar", tags=["radar"])


async def _load_radar(tenant_id: str):
    try:
        return await radar_service.get_radar(tenant_id)
    except Exception as e:
        logger.error("Error building radar", tenant_id=tenant_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load radar"
        ) from e


@router.get("")
async def get_radar(tenant_id: str = Depends(tenant_dependency)) -> dict:
    """Clients grouped by health status, overdue commitments and stats."""
    radar = await _load_radar(tenant_id)
    return {"data": radar.model_dump(mode="json")}


@router.get("/attention")
async def get_attention_clients(tenant_id: str = Depends(tenant_dependency)) -> dict:
    radar = await _load_radar(tenant_id)
    return {
        "data": [client.model_dump(mode="json") for client in radar.attention],
        "count": len(radar.attention),
    }
