"""
Radar aggregator: groups a tenant's clients by health status for the
dashboard. Reads stored health only; it never recomputes scores.
"""

from clientpulse.features.health_scoring.domain.models import HealthStatus
from clientpulse.infrastructure.observability.logging import get_logger

from .domain.models import OverdueAction, RadarClient, RadarData, RadarStats
from .repository import RadarRepository

logger = get_logger(__name__)


def build_radar(client_rows: list[dict], overdue_rows: list[dict]) -> RadarData:
    clients = [
        RadarClient.model_validate({**row, "health_signals": row.get("health_signals") or []})
        for row in client_rows
    ]
    grouped: dict[HealthStatus, list[RadarClient]] = {status: [] for status in HealthStatus}
    for client in clients:
        grouped[client.health_status].append(client)

    overdue = [OverdueAction.model_validate(row) for row in overdue_rows]
    total = len(clients)
    healthy = grouped[HealthStatus.HEALTHY]

    return RadarData(
        attention=grouped[HealthStatus.ATTENTION],
        watch=grouped[HealthStatus.WATCH],
        healthy=healthy,
        overdue_actions=overdue,
        stats=RadarStats(
            total_clients=total,
            needs_attention=len(grouped[HealthStatus.ATTENTION]),
            overdue_actions=len(overdue),
            healthy_percent=round(len(healthy) * 100 / total) if total else 100,
        ),
    )


class RadarService:
    def __init__(self, repository=RadarRepository):
        self.repository = repository

    async def get_radar(self, tenant_id: str) -> RadarData:
        client_rows = await self.repository.fetch_clients_with_stats(tenant_id)
        overdue_rows = await self.repository.fetch_overdue_actions(tenant_id)
        radar = build_radar(client_rows, overdue_rows)

        logger.debug(
            "Radar built",
            tenant_id=tenant_id,
            total_clients=radar.stats.total_clients,
            needs_attention=radar.stats.needs_attention,
        )
        return radar


radar_service = RadarService()
