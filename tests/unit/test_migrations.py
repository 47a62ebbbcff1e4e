"""Tests for ledger schema migrations."""
from sqlalchemy import create_engine, inspect, text

from clinisync.db.engine import create_ledger_engine
from clinisync.db.migrations import run_migrations
from clinisync.ledger.store import LedgerStore
from clinisync.models.ledger import EntityType

# sync_records as written before destination references were tracked
LEGACY_SCHEMA = """
CREATE TABLE sync_records (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  source_id TEXT NOT NULL,
  entity_type TEXT NOT NULL,
  data_hash TEXT NOT NULL,
  sync_status TEXT NOT NULL DEFAULT 'pending',
  last_synced_at TEXT NOT NULL,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  UNIQUE(source_id, entity_type)
)
"""


def _columns(engine, table):
    return {c["name"] for c in inspect(engine).get_columns(table)}


class TestMigrations:
    def test_adds_missing_columns_to_legacy_ledger(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'legacy.db'}"
        legacy = create_engine(url)
        with legacy.connect() as conn:
            conn.execute(text(LEGACY_SCHEMA))
            conn.execute(text(
                "INSERT INTO sync_records (source_id, entity_type, data_hash, sync_status,"
                " last_synced_at, created_at, updated_at) VALUES"
                " ('c1', 'client', 'h1', 'synced', '2025-01-01 00:00:00',"
                " '2025-01-01 00:00:00', '2025-01-01 00:00:00')"
            ))
            conn.commit()
        legacy.dispose()

        engine = create_ledger_engine(url)
        assert {"destination_reference", "error_message"} <= _columns(engine, "sync_records")

        record = LedgerStore(engine).find("c1", EntityType.CLIENT)
        assert record.data_hash == "h1"
        assert record.destination_reference is None
        engine.dispose()

    def test_idempotent(self, engine):
        before = _columns(engine, "sync_records")
        run_migrations(engine)
        run_migrations(engine)
        assert _columns(engine, "sync_records") == before
