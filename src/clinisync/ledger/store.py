"""
LedgerStore — durable record of what has been pushed to the destination.

Owns two tables (see clinisync.models.ledger):
  sync_records  one row per (source_id, entity_type)
  sync_runs     one row per orchestrator run

Every method opens its own session and commits before returning, so a crash
right after a call leaves a consistent, queryable ledger. Database errors are
not caught here: the engine cannot proceed without a working ledger.

Single writer: concurrent runs against the same ledger are not supported and
must be serialized by the caller (see SyncService).
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from clinisync.db.engine import create_ledger_engine
from clinisync.models.ledger import (
    EntityType,
    RunMode,
    RunStatus,
    SyncRecord,
    SyncRun,
    SyncStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class LedgerStore:
    """Atomic operations over the ledger tables."""

    def __init__(self, engine: Engine):
        """
        Args:
            engine: SQLAlchemy engine whose schema is already created
                (create_ledger_engine() does this).
        """
        self.engine = engine

    def close(self) -> None:
        """Release pooled connections. The store must not be used afterwards."""
        self.engine.dispose()

    def __enter__(self) -> "LedgerStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ─── Sync records ─────────────────────────────────────────────────────────

    def find(self, source_id: str, entity_type: EntityType) -> Optional[SyncRecord]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncRecord).where(
                    SyncRecord.source_id == source_id,
                    SyncRecord.entity_type == EntityType(entity_type).value,
                )
            ).first()

    def upsert(
        self,
        source_id: str,
        entity_type: EntityType,
        data_hash: str,
        status: SyncStatus,
        reference: Optional[str] = None,
        error: Optional[str] = None,
    ) -> SyncRecord:
        """Insert or update the entry keyed on (source_id, entity_type).

        A previously stored destination reference is never replaced by None:
        once the destination has told us where a record lives, that sticks.
        """
        entity_type = EntityType(entity_type).value
        status = SyncStatus(status).value
        now = utcnow()

        with Session(self.engine) as s:
            record = s.exec(
                select(SyncRecord).where(
                    SyncRecord.source_id == source_id,
                    SyncRecord.entity_type == entity_type,
                )
            ).first()
            if record is None:
                record = SyncRecord(
                    source_id=source_id,
                    entity_type=entity_type,
                    created_at=now,
                )
            record.data_hash = data_hash
            record.sync_status = status
            if reference is not None:
                record.destination_reference = reference
            record.error_message = error
            record.last_synced_at = now
            record.updated_at = now
            s.add(record)
            s.commit()
            s.refresh(record)
        return record

    def mark_pending(self, source_id: str, entity_type: EntityType, data_hash: str) -> SyncRecord:
        """Record that delivery is about to be attempted.

        If the process dies before mark_synced/mark_failed, the entry stays
        pending and the next run retries it.
        """
        return self.upsert(source_id, entity_type, data_hash, SyncStatus.PENDING)

    def mark_synced(
        self,
        source_id: str,
        entity_type: EntityType,
        data_hash: str,
        reference: Optional[str] = None,
    ) -> SyncRecord:
        return self.upsert(source_id, entity_type, data_hash, SyncStatus.SYNCED, reference)

    def mark_failed(
        self, source_id: str, entity_type: EntityType, data_hash: str, error: str
    ) -> SyncRecord:
        return self.upsert(source_id, entity_type, data_hash, SyncStatus.FAILED, error=error)

    def list_records(
        self,
        entity_type: Optional[EntityType] = None,
        status: Optional[SyncStatus] = None,
        limit: Optional[int] = None,
    ) -> List[SyncRecord]:
        """List ledger entries, most recently updated first."""
        query = select(SyncRecord)
        if entity_type is not None:
            query = query.where(SyncRecord.entity_type == EntityType(entity_type).value)
        if status is not None:
            query = query.where(SyncRecord.sync_status == SyncStatus(status).value)
        query = query.order_by(SyncRecord.updated_at.desc(), SyncRecord.id.desc())
        if limit is not None:
            query = query.limit(limit)
        with Session(self.engine) as s:
            return list(s.exec(query).all())

    def count_by_status(self) -> Dict[str, Dict[str, int]]:
        """Return {entity_type: {sync_status: count}} across the whole ledger."""
        with Session(self.engine) as s:
            rows = s.exec(
                select(SyncRecord.entity_type, SyncRecord.sync_status, func.count())
                .group_by(SyncRecord.entity_type, SyncRecord.sync_status)
            ).all()
        totals: Dict[str, Dict[str, int]] = {}
        for entity_type, status, count in rows:
            totals.setdefault(entity_type, {})[status] = count
        return totals

    # ─── Sync runs ────────────────────────────────────────────────────────────

    def create_run(self, run_id: str, mode: RunMode, dry_run: bool) -> SyncRun:
        run = SyncRun(
            run_id=run_id,
            started_at=utcnow(),
            mode=RunMode(mode).value,
            dry_run=dry_run,
            entity_types=[],
            counts={},
            status=RunStatus.RUNNING.value,
        )
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        logger.debug("Created run %s (mode=%s, dry_run=%s)", run_id, run.mode, dry_run)
        return run

    def complete_run(
        self,
        run_id: str,
        entity_types: Sequence[EntityType],
        counts: Dict[str, int],
        status: RunStatus,
    ) -> SyncRun:
        """Finalize a run with its counts and terminal status."""
        with Session(self.engine) as s:
            run = s.exec(select(SyncRun).where(SyncRun.run_id == run_id)).first()
            if run is None:
                raise LookupError(f"Unknown sync run {run_id!r}")
            run.completed_at = utcnow()
            run.entity_types = [EntityType(e).value for e in entity_types]
            run.counts = dict(counts)
            run.status = RunStatus(status).value
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def get_run(self, run_id: str) -> Optional[SyncRun]:
        with Session(self.engine) as s:
            return s.exec(select(SyncRun).where(SyncRun.run_id == run_id)).first()

    def latest_run(self) -> Optional[SyncRun]:
        with Session(self.engine) as s:
            return s.exec(
                select(SyncRun).order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            ).first()


@contextmanager
def open_ledger(database_url: str) -> Iterator[LedgerStore]:
    """Open a ledger for the duration of a block and always release it."""
    store = LedgerStore(create_ledger_engine(database_url))
    try:
        yield store
    finally:
        store.close()
