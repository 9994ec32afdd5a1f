"""
Read-only queries behind the radar dashboard. Every query is scoped to one
tenant.
"""

from clientpulse.db.helpers import fetch_all
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RadarRepository:
    @staticmethod
    async def fetch_clients_with_stats(tenant_id: str) -> list[dict]:
        """Active clients, attention first, then watch, then healthy; lowest score first."""
        return await fetch_all(
            """
            SELECT
                c.id::text AS id, c.name, c.company,
                c.health_score, c.health_status, c.health_trend, c.health_signals,
                c.health_updated_at, c.last_contact_at,
                (SELECT COUNT(*) FROM action_items ai
                 WHERE ai.client_id = c.id AND ai.status = 'open' AND ai.owner = 'me')
                    AS open_commitments,
                (SELECT COUNT(*) FROM action_items ai
                 WHERE ai.client_id = c.id AND ai.status = 'open' AND ai.owner = 'me'
                   AND ai.due_date < CURRENT_DATE)
                    AS overdue_count,
                (SELECT MAX(hs.created_at) FROM health_snapshots hs
                 WHERE hs.client_id = c.id)
                    AS latest_snapshot_at
            FROM clients c
            WHERE c.user_id = %s AND c.status = 'active'
            ORDER BY
                CASE c.health_status
                    WHEN 'attention' THEN 1
                    WHEN 'watch' THEN 2
                    ELSE 3
                END,
                c.health_score ASC,
                c.name ASC
            """,
            (tenant_id,),
        )

    @staticmethod
    async def fetch_overdue_actions(tenant_id: str) -> list[dict]:
        return await fetch_all(
            """
            SELECT ai.id::text AS id, ai.client_id::text AS client_id,
                   c.name AS client_name, ai.description, ai.due_date,
                   (CURRENT_DATE - ai.due_date) AS days_overdue
            FROM action_items ai
            JOIN clients c ON c.id = ai.client_id
            WHERE ai.user_id = %s
              AND ai.status = 'open'
              AND ai.owner = 'me'
              AND ai.due_date < CURRENT_DATE
              AND c.status = 'active'
            ORDER BY ai.due_date ASC, ai.id
            """,
            (tenant_id,),
        )
