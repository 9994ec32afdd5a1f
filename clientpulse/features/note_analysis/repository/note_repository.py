"""
Repository for the note fields owned by the analysis pipeline.

Every status write is conditional on the expected current status (and, for
processing notes, on the attempt holding the note). The returned boolean
says whether the guard matched.
"""

from datetime import UTC, date, datetime

from psycopg.types.json import Jsonb

from clientpulse.db.helpers import execute_query, fetch_one
from clientpulse.db.pool import get_db_transaction
from clientpulse.features.note_analysis.domain.models import (
    AnalysisResult,
    NoteForAnalysis,
    NoteStatus,
    resolve_due_date,
)
from clientpulse.features.note_analysis.pipeline.state import ensure_transition
from clientpulse.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CLIENT_PERSONAL_DETAILS = 20


class NoteAnalysisRepository:
    """Thin SQL wrappers for reading notes and moving their analysis state."""

    @staticmethod
    async def get_note_for_analysis(note_id: str, tenant_id: str) -> NoteForAnalysis | None:
        """Load a note only if it belongs to the tenant."""
        row = await fetch_one(
            """
            SELECT n.id::text AS id, n.user_id::text AS user_id, n.client_id::text AS client_id,
                   c.name AS client_name,
                   n.ai_status, n.ai_attempt, n.ai_claimed_at, n.ai_requested_at,
                   n.title, n.summary, n.discussed, n.decisions, n.action_items_raw,
                   n.concerns, n.personal_notes, n.next_steps, n.mood,
                   n.meeting_date::text AS meeting_date, n.meeting_type
            FROM notes n
            JOIN clients c ON c.id = n.client_id AND c.user_id = n.user_id
            WHERE n.id = %s AND n.user_id = %s
            """,
            (note_id, tenant_id),
        )
        if not row:
            return None

        return NoteForAnalysis(
            id=row["id"],
            tenant_id=row["user_id"],
            client_id=row["client_id"],
            client_name=row["client_name"],
            ai_status=NoteStatus(row["ai_status"]),
            ai_attempt=row["ai_attempt"] or 0,
            ai_claimed_at=row["ai_claimed_at"],
            ai_requested_at=row["ai_requested_at"],
            title=row["title"],
            summary=row["summary"],
            discussed=row["discussed"],
            decisions=row["decisions"],
            action_items_raw=row["action_items_raw"],
            concerns=row["concerns"],
            personal_notes=row["personal_notes"],
            next_steps=row["next_steps"],
            mood=row["mood"],
            meeting_date=row["meeting_date"],
            meeting_type=row["meeting_type"],
        )

    @staticmethod
    async def claim_for_processing(
        note_id: str, tenant_id: str, attempt: int, lease_seconds: int
    ) -> bool:
        """
        Move a note to processing for this attempt.

        Matches a pending note, a processing note held by an older attempt,
        or a processing note whose claim by this same attempt has expired.
        """
        affected = await execute_query(
            """
            UPDATE notes
            SET ai_status = 'processing',
                ai_attempt = %s,
                ai_claimed_at = NOW(),
                updated_at = NOW()
            WHERE id = %s
              AND user_id = %s
              AND (
                    ai_status = 'pending'
                 OR (ai_status = 'processing' AND ai_attempt < %s)
                 OR (ai_status = 'processing' AND ai_attempt = %s
                     AND (ai_claimed_at IS NULL
                          OR ai_claimed_at < NOW() - make_interval(secs => %s)))
              )
            """,
            (attempt, note_id, tenant_id, attempt, attempt, lease_seconds),
        )
        return affected > 0

    @staticmethod
    async def compare_and_set_status(
        note_id: str,
        tenant_id: str,
        expected: NoteStatus,
        target: NoteStatus,
        *,
        attempt: int | None = None,
        analysis: AnalysisResult | None = None,
        error: str | None = None,
        requested_at: datetime | None = None,
    ) -> bool:
        """
        Conditionally move a note from ``expected`` to ``target``.

        - processing -> completed requires ``analysis`` (applied atomically)
        - processing -> failed requires ``error``
        - failed -> pending resets the attempt counter for a manual retry

        Raises:
            InvalidNoteTransitionError: for transitions the state machine forbids.
        """
        ensure_transition(expected, target)

        if target == NoteStatus.PROCESSING:
            raise ValueError("Use claim_for_processing to move a note into processing")

        if target == NoteStatus.COMPLETED:
            if analysis is None or attempt is None:
                raise ValueError("Completing a note requires the analysis and attempt")
            return await NoteAnalysisRepository.complete_with_analysis(
                note_id, tenant_id, attempt, analysis
            )

        if target == NoteStatus.FAILED:
            if not error or attempt is None:
                raise ValueError("Failing a note requires an error message and attempt")
            affected = await execute_query(
                """
                UPDATE notes
                SET ai_status = 'failed', ai_error = %s, updated_at = NOW()
                WHERE id = %s AND user_id = %s
                  AND ai_status = 'processing' AND ai_attempt = %s
                """,
                (error[:500], note_id, tenant_id, attempt),
            )
            return affected > 0

        # failed -> pending
        affected = await execute_query(
            """
            UPDATE notes
            SET ai_status = 'pending',
                ai_error = NULL,
                ai_attempt = 0,
                ai_claimed_at = NULL,
                ai_requested_at = %s,
                updated_at = NOW()
            WHERE id = %s AND user_id = %s AND ai_status = %s
            """,
            (requested_at or datetime.now(UTC), note_id, tenant_id, expected.value),
        )
        return affected > 0

    @staticmethod
    async def complete_with_analysis(
        note_id: str,
        tenant_id: str,
        attempt: int,
        analysis: AnalysisResult,
        today: date | None = None,
    ) -> bool:
        """
        Apply an analysis in one transaction: note fields, action items and
        the client's personal details. Nothing is written if the guard fails.
        """
        today = today or datetime.now(UTC).date()

        async with await get_db_transaction() as conn:
            row = await fetch_one(
                """
                UPDATE notes
                SET ai_status = 'completed',
                    ai_error = NULL,
                    title = COALESCE(NULLIF(title, ''), %s),
                    ai_summary = %s,
                    ai_risk_signals = %s,
                    ai_personal_details = %s,
                    ai_sentiment_score = %s,
                    ai_topics = %s,
                    ai_key_insights = %s,
                    ai_relationship_signals = %s,
                    ai_follow_up_recommendations = %s,
                    ai_communication_style = %s,
                    updated_at = NOW()
                WHERE id = %s AND user_id = %s
                  AND ai_status = 'processing' AND ai_attempt = %s
                RETURNING client_id::text AS client_id
                """,
                (
                    analysis.title,
                    analysis.summary,
                    Jsonb(analysis.risk_signals),
                    Jsonb(analysis.personal_details),
                    analysis.sentiment_score,
                    Jsonb(analysis.topics),
                    Jsonb(analysis.key_insights),
                    Jsonb(analysis.relationship_signals),
                    Jsonb(analysis.follow_up_recommendations),
                    analysis.communication_style,
                    note_id,
                    tenant_id,
                    attempt,
                ),
                connection=conn,
            )
            if not row:
                return False

            client_id = row["client_id"]

            for item in analysis.action_items:
                await execute_query(
                    """
                    INSERT INTO action_items (user_id, client_id, note_id, description, owner, due_date)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (
                        tenant_id,
                        client_id,
                        note_id,
                        item.description,
                        item.owner,
                        resolve_due_date(item.due_hint, today),
                    ),
                    connection=conn,
                )

            if analysis.personal_details:
                client = await fetch_one(
                    """
                    SELECT ai_personal_details FROM clients
                    WHERE id = %s AND user_id = %s
                    FOR UPDATE
                    """,
                    (client_id, tenant_id),
                    connection=conn,
                )
                existing = list((client or {}).get("ai_personal_details") or [])
                merged = list(dict.fromkeys(existing + analysis.personal_details))
                await execute_query(
                    "UPDATE clients SET ai_personal_details = %s WHERE id = %s AND user_id = %s",
                    (Jsonb(merged[:MAX_CLIENT_PERSONAL_DETAILS]), client_id, tenant_id),
                    connection=conn,
                )

        logger.debug(
            "Analysis applied to note",
            note_id=note_id,
            attempt=attempt,
            action_items=len(analysis.action_items),
        )
        return True

    @staticmethod
    async def reset_for_retry(
        note_id: str, tenant_id: str, requested_at: datetime | None = None
    ) -> bool:
        """Move a failed note back to pending for a manual re-trigger."""
        return await NoteAnalysisRepository.compare_and_set_status(
            note_id,
            tenant_id,
            NoteStatus.FAILED,
            NoteStatus.PENDING,
            requested_at=requested_at,
        )
