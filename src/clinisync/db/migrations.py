"""
Ledger schema migrations.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called from create_ledger_engine() after create_all() so ledgers written
before reference tracking existed keep working without manual steps.
"""
import logging

from sqlalchemy import text

logger = logging.getLogger(__name__)


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Only SQLite ledgers are migrated (uses PRAGMA table_info); other
    backends are expected to be created fresh by create_all().

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return
    with engine.connect() as conn:
        # sync_records: destination reference tracking and failure detail
        _add_column_if_missing(conn, "sync_records", "destination_reference", "TEXT")
        _add_column_if_missing(conn, "sync_records", "error_message", "TEXT")
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name.
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "TEXT".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        logger.info("Adding column %s.%s", table, column)
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
