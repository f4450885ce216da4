"""
Database migrations for the catalog sync.

Uses ALTER TABLE ADD COLUMN for incremental schema evolution. Each
migration is idempotent: columns are only added if absent.

Called automatically from make_engine() after create_all() so both fresh
installs and databases created before the progress-tracking columns
existed are handled without manual steps.
"""
from sqlalchemy import inspect, text

# synclog columns added after the first release (live progress + run lock)
SYNCLOG_COLUMNS = [
    ("current_step", "TEXT"),
    ("progress", "INTEGER DEFAULT 0"),
    ("total_products", "INTEGER DEFAULT 0"),
    ("current_product_index", "INTEGER DEFAULT 0"),
    ("current_product_name", "TEXT"),
    ("estimated_time_remaining_ms", "INTEGER"),
    ("warnings", "JSON"),
    ("last_updated", "TIMESTAMP"),
    ("active_slot", "VARCHAR"),
]

# Legacy rows have no step or progress; derive them from the final status
LEGACY_PROGRESS_BACKFILL = """
UPDATE synclog SET
  current_step = CASE
    WHEN status = 'success' THEN 'Sync completed successfully'
    WHEN status = 'error' THEN 'Sync failed with error'
    WHEN status = 'partial' THEN 'Sync completed with warnings'
    WHEN status = 'cancelled' THEN 'Sync cancelled'
    ELSE 'Processing...'
  END,
  progress = CASE
    WHEN status IN ('success', 'partial') THEN 100
    WHEN status IN ('error', 'cancelled') THEN 0
    ELSE 50
  END,
  last_updated = COALESCE(completed_at, started_at, CURRENT_TIMESTAMP)
WHERE current_step IS NULL
"""


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times: checks column existence before altering.

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        for column, col_type in SYNCLOG_COLUMNS:
            _add_column_if_missing(conn, "synclog", column, col_type)

        conn.execute(text("UPDATE synclog SET warnings = '[]' WHERE warnings IS NULL"))
        # Rows from before live progress: "running" meant processing
        conn.execute(text(
            "UPDATE synclog SET status = 'processing_products' WHERE status = 'running'"
        ))
        conn.execute(text(LEGACY_PROGRESS_BACKFILL))
        # Unique index backing the single-writer slot (added after ALTER TABLE)
        conn.execute(text(
            "CREATE UNIQUE INDEX IF NOT EXISTS ix_synclog_active_slot ON synclog (active_slot)"
        ))
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLModel names it).
        column: Column name to add.
        col_type: SQL type string, e.g. "INTEGER", "TEXT".
    """
    existing_columns = {c["name"] for c in inspect(conn).get_columns(table)}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
