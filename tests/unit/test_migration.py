"""
Checks on the pipeline migration that do not need a database.
"""

from pathlib import Path

MIGRATION = Path(__file__).resolve().parents[2] / "sql" / "001_note_analysis_pipeline.sql"


def _statements() -> list[str]:
    text = "\n".join(
        line for line in MIGRATION.read_text().splitlines() if not line.lstrip().startswith("--")
    )
    return [" ".join(stmt.split()) for stmt in text.split(";") if stmt.strip()]


def test_requested_at_is_backfilled_before_it_becomes_required():
    statements = _statements()

    added = next(
        i for i, s in enumerate(statements) if "ADD COLUMN IF NOT EXISTS ai_requested_at" in s
    )
    backfill = statements.index(
        "UPDATE notes SET ai_requested_at = created_at WHERE ai_requested_at IS NULL"
    )
    required = next(
        i for i, s in enumerate(statements) if "ALTER COLUMN ai_requested_at SET NOT NULL" in s
    )

    assert added < backfill < required
    # Added without a default so existing rows are not stamped with the migration time
    assert "ai_requested_at TIMESTAMPTZ," in statements[added]


def test_error_is_only_kept_on_failed_notes():
    statements = _statements()

    assert any("CHECK (ai_error IS NULL OR ai_status = 'failed')" in s for s in statements)
