"""
Repository helpers for client health scoring.

Date arithmetic (days since contact, days overdue, the 30-day windows)
happens here in SQL against the session's UTC clock, so the engine only
ever sees resolved numbers.
"""

from datetime import UTC, datetime

import psycopg
from psycopg.types.json import Jsonb

from clientpulse.db.helpers import execute_query, fetch_all, fetch_one
from clientpulse.db.pool import get_db_connection, get_db_transaction
from clientpulse.infrastructure.observability.logging import get_logger

from .domain.models import (
    ActionItemInput,
    ClientSignalInputs,
    HealthAssessment,
    HealthSnapshot,
    HealthStatus,
    RecentNoteInput,
    Signal,
    Trend,
)

logger = get_logger(__name__)

RECENT_NOTES_LIMIT = 10


def _signals_json(signals: list[Signal]) -> Jsonb:
    return Jsonb([signal.model_dump(mode="json") for signal in signals])


class HealthScoringRepository:
    """Thin wrappers for reading score inputs and persisting health."""

    @staticmethod
    async def fetch_client_signal_inputs(
        client_id: str, tenant_id: str | None = None
    ) -> ClientSignalInputs | None:
        """Gather the engine inputs for a client, or None if it does not exist."""
        async with await get_db_connection() as conn:
            client_query = """
                SELECT id::text AS id, user_id::text AS user_id,
                       (CURRENT_DATE - last_contact_at::date) AS days_since_contact
                FROM clients
                WHERE id = %s
            """
            params: tuple = (client_id,)
            if tenant_id is not None:
                client_query += " AND user_id = %s"
                params = (client_id, tenant_id)

            client = await fetch_one(client_query, params, connection=conn)
            if not client:
                return None

            action_rows = await fetch_all(
                """
                SELECT owner, status,
                       GREATEST(COALESCE(CURRENT_DATE - due_date, 0), 0) AS days_overdue
                FROM action_items
                WHERE client_id = %s AND status = 'open'
                ORDER BY created_at, id
                """,
                (client_id,),
                connection=conn,
            )

            note_rows = await fetch_all(
                """
                SELECT ai_status, ai_sentiment_score, mood, ai_risk_signals,
                       (concerns IS NOT NULL AND btrim(concerns) <> '') AS has_concerns
                FROM notes
                WHERE client_id = %s
                  AND COALESCE(meeting_date, created_at) >= NOW() - INTERVAL '30 days'
                ORDER BY COALESCE(meeting_date, created_at) DESC, id
                LIMIT %s
                """,
                (client_id, RECENT_NOTES_LIMIT),
                connection=conn,
            )

            counts = await fetch_one(
                """
                SELECT
                    COUNT(*) FILTER (
                        WHERE COALESCE(meeting_date, created_at) >= NOW() - INTERVAL '30 days'
                    ) AS last_30,
                    COUNT(*) FILTER (
                        WHERE COALESCE(meeting_date, created_at) >= NOW() - INTERVAL '60 days'
                          AND COALESCE(meeting_date, created_at) < NOW() - INTERVAL '30 days'
                    ) AS previous_30
                FROM notes
                WHERE client_id = %s
                """,
                (client_id,),
                connection=conn,
            )

        return ClientSignalInputs(
            client_id=client["id"],
            tenant_id=client["user_id"],
            days_since_contact=client["days_since_contact"],
            action_items=tuple(
                ActionItemInput(
                    owner=row["owner"], status=row["status"], days_overdue=row["days_overdue"]
                )
                for row in action_rows
            ),
            recent_notes=tuple(
                RecentNoteInput(
                    ai_status=row["ai_status"],
                    sentiment_score=row["ai_sentiment_score"],
                    mood=row["mood"],
                    risk_signals=tuple(row["ai_risk_signals"] or ()),
                    has_concerns=bool(row["has_concerns"]),
                )
                for row in note_rows
            ),
            notes_last_30_days=(counts or {}).get("last_30") or 0,
            notes_previous_30_days=(counts or {}).get("previous_30") or 0,
        )

    @staticmethod
    async def fetch_latest_snapshot(client_id: str) -> HealthSnapshot | None:
        # Concurrent recomputes may insert out of order; created_at decides
        row = await fetch_one(
            """
            SELECT client_id::text AS client_id, score, status, signals,
                   snapshot_date, created_at
            FROM health_snapshots
            WHERE client_id = %s
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (client_id,),
        )
        if not row:
            return None

        return HealthSnapshot(
            client_id=row["client_id"],
            score=row["score"],
            status=HealthStatus(row["status"]),
            signals=[Signal.model_validate(s) for s in row["signals"] or []],
            snapshot_date=row["snapshot_date"],
            created_at=row["created_at"],
        )

    @staticmethod
    async def append_health_snapshot(
        client_id: str,
        assessment: HealthAssessment,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        await execute_query(
            """
            INSERT INTO health_snapshots (client_id, score, status, signals, snapshot_date)
            VALUES (%s, %s, %s, %s, CURRENT_DATE)
            """,
            (
                client_id,
                assessment.score,
                assessment.status.value,
                _signals_json(assessment.signals),
            ),
            connection=connection,
        )

    @staticmethod
    async def update_client_health(
        client_id: str,
        assessment: HealthAssessment,
        trend: Trend,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        await execute_query(
            """
            UPDATE clients
            SET health_score = %s,
                health_status = %s,
                health_signals = %s,
                health_trend = %s,
                health_updated_at = NOW()
            WHERE id = %s
            """,
            (
                assessment.score,
                assessment.status.value,
                _signals_json(assessment.signals),
                trend.value,
                client_id,
            ),
            connection=connection,
        )

    @staticmethod
    async def save_health(client_id: str, assessment: HealthAssessment, trend: Trend) -> datetime:
        """Append the snapshot and update the client atomically."""
        async with await get_db_transaction() as conn:
            await HealthScoringRepository.append_health_snapshot(
                client_id, assessment, connection=conn
            )
            await HealthScoringRepository.update_client_health(
                client_id, assessment, trend, connection=conn
            )

        logger.debug(
            "Client health saved",
            client_id=client_id,
            score=assessment.score,
            status=assessment.status.value,
            trend=trend.value,
        )
        return datetime.now(UTC)

    @staticmethod
    async def fetch_active_client_ids() -> list[tuple[str, str]]:
        """(client_id, tenant_id) for every active client of every active user."""
        rows = await fetch_all(
            """
            SELECT c.id::text AS client_id, c.user_id::text AS tenant_id
            FROM clients c
            JOIN users u ON u.id = c.user_id
            WHERE c.status = 'active'
              AND u.status = 'active'
            ORDER BY c.user_id, c.id
            """
        )
        return [(row["client_id"], row["tenant_id"]) for row in rows]
