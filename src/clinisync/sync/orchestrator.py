"""
SyncOrchestrator — drives one sync run from a change set to a run summary.

Flow for a run:
  1. Create the run record (status="running") if ledger-backed
  2. Dry run: stop here, finalize with zero counts
  3. Connect the destination session (failure is fatal to the run)
  4. For each selected entity type, clients first:
       mark pending → deliver via adapter → mark synced / failed
     then, for clients only, look up missing references of unchanged entries
     (search only, never create)
  5. Disconnect (always), finalize the run record, return the summary

An item's failure never aborts the run: adapter exceptions are caught at the
item boundary and recorded. Run-level failures (session lost, ledger write
errors) finalize the run as "failed" and re-raise.

Items are processed strictly one at a time: the destination session is a
single shared browsing context and cannot serve concurrent operations.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from clinisync.destination.base import DestinationAdapter
from clinisync.errors import DestinationSessionError
from clinisync.ledger.fingerprint import fingerprint
from clinisync.ledger.store import LedgerStore
from clinisync.models.ledger import ENTITY_ORDER, EntityType, RunStatus, utcnow
from clinisync.models.records import SourceRecord
from clinisync.sync.models import (
    ChangeSet,
    DetectedChanges,
    RunSummary,
    SyncAction,
    SyncOptions,
    SyncResult,
)

logger = logging.getLogger(__name__)


class UnresolvedClientError(LookupError):
    """The owning client has no known destination reference yet."""


@dataclass
class _RunContext:
    run_id: str
    destination: DestinationAdapter
    use_ledger: bool
    results: List[SyncResult] = field(default_factory=list)
    # client source_id -> destination reference, learned during this run
    client_references: Dict[str, str] = field(default_factory=dict)


class SyncOrchestrator:
    """Runs change sets against a destination adapter, recording outcomes in the ledger."""

    def __init__(self, ledger: Optional[LedgerStore] = None):
        """
        Args:
            ledger: LedgerStore for ledger-backed runs. May be None when every
                run uses SyncOptions(use_ledger=False).
        """
        self.ledger = ledger

    async def run(
        self,
        changes: DetectedChanges,
        destination: DestinationAdapter,
        options: Optional[SyncOptions] = None,
    ) -> RunSummary:
        """
        Execute one sync run.

        Args:
            changes: Per-entity-type change sets from the ChangeDetector.
            destination: Adapter handle; connected and released by this call.
            options: Run options (dry run, entity selection, mode, ledger use).

        Returns:
            RunSummary with per-item results and aggregate counts.

        Raises:
            Any run-level exception (session acquisition/loss, ledger failure),
            after the run record has been finalized as "failed".
        """
        options = options or SyncOptions()
        if options.use_ledger and self.ledger is None:
            raise ValueError("Ledger-backed run requested but no LedgerStore was given")

        selected_set = {EntityType(e) for e in options.entity_types}
        selected = [e for e in ENTITY_ORDER if e in selected_set]
        ctx = _RunContext(
            run_id=str(uuid.uuid4()),
            destination=destination,
            use_ledger=options.use_ledger,
        )
        started_at = utcnow()

        logger.info(
            "Starting sync run %s (dry_run=%s, entities=%s)",
            ctx.run_id,
            options.dry_run,
            ",".join(e.value for e in selected),
        )
        if ctx.use_ledger:
            self.ledger.create_run(ctx.run_id, options.mode, options.dry_run)

        if options.dry_run:
            logger.info("Dry run; skipping destination push")
            return self._finish(ctx, started_at, selected, RunStatus.COMPLETED)

        try:
            try:
                await destination.connect()
                for entity_type in selected:
                    await self._sync_entity_type(ctx, entity_type, changes.for_type(entity_type))
            finally:
                await self._release(destination)
        except Exception as exc:
            logger.error("Sync run %s failed: %s", ctx.run_id, exc)
            self._finish(ctx, started_at, selected, RunStatus.FAILED)
            raise

        summary = self._finish(ctx, started_at, selected, RunStatus.COMPLETED)
        logger.info("Sync run %s complete: %s", ctx.run_id, summary.counts.model_dump())
        return summary

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _sync_entity_type(
        self, ctx: _RunContext, entity_type: EntityType, change_set: ChangeSet
    ) -> None:
        queue: List[Tuple[SourceRecord, bool]] = [(r, False) for r in change_set.new]
        queue += [(r, True) for r in change_set.changed]
        backfill: List[SourceRecord] = []
        if entity_type == EntityType.CLIENT and ctx.use_ledger:
            backfill = self._missing_references(change_set.unchanged)

        if not queue and not backfill:
            logger.info("No %s changes to push", entity_type.value)
            return

        if queue:
            logger.info("Pushing %d %s record(s)", len(queue), entity_type.value)
        for record, is_changed in queue:
            result = await self._sync_item(ctx, record, is_changed)
            ctx.results.append(result)
        for record in backfill:
            result = await self._backfill_item(ctx, record)
            if result is not None:
                ctx.results.append(result)

    def _missing_references(self, unchanged: List[SourceRecord]) -> List[SourceRecord]:
        """Unchanged clients whose ledger entry never got a destination reference."""
        backfill = []
        for record in unchanged:
            entry = self.ledger.find(record.source_id, record.entity_type)
            if entry is None or not entry.destination_reference:
                backfill.append(record)
        if backfill:
            logger.info("Looking up %d client(s) to backfill references", len(backfill))
        return backfill

    async def _sync_item(
        self, ctx: _RunContext, record: SourceRecord, is_changed: bool
    ) -> SyncResult:
        entity_type = record.entity_type
        data_hash = fingerprint(record)
        known_reference = None

        if ctx.use_ledger:
            entry = self.ledger.mark_pending(record.source_id, entity_type, data_hash)
            known_reference = entry.destination_reference
        client_reference = self._resolve_client_reference(ctx, record)

        try:
            action, reference = await self._deliver(
                ctx.destination, record, is_changed, known_reference, client_reference
            )
        except DestinationSessionError:
            # Session is gone: leave the entry pending for the next run
            raise
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.warning(
                "Failed to sync %s %s: %s", entity_type.value, record.source_id, error
            )
            if ctx.use_ledger:
                self.ledger.mark_failed(record.source_id, entity_type, data_hash, error)
            return SyncResult(
                entity_type=entity_type,
                source_id=record.source_id,
                action=SyncAction.FAILED,
                error=error,
                timestamp=utcnow(),
            )

        # Skipped items are synced too: store the new hash and the found reference
        if ctx.use_ledger:
            self.ledger.mark_synced(record.source_id, entity_type, data_hash, reference)
        if entity_type == EntityType.CLIENT and reference:
            ctx.client_references[record.source_id] = reference

        logger.info(
            "%s %s %s (reference=%s)",
            action.value.capitalize(), entity_type.value, record.source_id, reference,
        )
        return SyncResult(
            entity_type=entity_type,
            source_id=record.source_id,
            action=action,
            reference=reference,
            timestamp=utcnow(),
        )

    async def _backfill_item(
        self, ctx: _RunContext, record: SourceRecord
    ) -> Optional[SyncResult]:
        """Look up an already-synced client's destination reference.

        Only search_by_identity is called; the record was delivered before, so
        it is never created again. No match leaves the entry as it is and
        produces no result.
        """
        try:
            reference = await ctx.destination.search_by_identity(record)
        except DestinationSessionError:
            raise
        except Exception as exc:
            # Entry stays synced; the lookup is repeated next run
            error = str(exc) or type(exc).__name__
            logger.warning("Reference lookup failed for client %s: %s", record.source_id, error)
            return SyncResult(
                entity_type=record.entity_type,
                source_id=record.source_id,
                action=SyncAction.FAILED,
                error=error,
                timestamp=utcnow(),
            )

        if reference is None:
            logger.debug("No destination match for client %s", record.source_id)
            return None

        self.ledger.mark_synced(record.source_id, record.entity_type, fingerprint(record), reference)
        ctx.client_references[record.source_id] = reference
        logger.info("Backfilled reference for client %s: %s", record.source_id, reference)
        return SyncResult(
            entity_type=record.entity_type,
            source_id=record.source_id,
            action=SyncAction.SKIPPED,
            reference=reference,
            timestamp=utcnow(),
        )

    def _resolve_client_reference(self, ctx: _RunContext, record: SourceRecord) -> Optional[str]:
        client_id = record.client_source_id
        if not client_id:
            return None
        if client_id in ctx.client_references:
            return ctx.client_references[client_id]
        if ctx.use_ledger:
            entry = self.ledger.find(client_id, EntityType.CLIENT)
            if entry is not None and entry.destination_reference:
                return entry.destination_reference
        return None

    async def _deliver(
        self,
        destination: DestinationAdapter,
        record: SourceRecord,
        is_changed: bool,
        known_reference: Optional[str],
        client_reference: Optional[str],
    ) -> Tuple[SyncAction, Optional[str]]:
        """Push one record. Returns (action, destination reference)."""
        # Notes are written under their client; without one they can only be skipped
        needs_client = record.entity_type == EntityType.SESSION_NOTE and client_reference is None

        if is_changed and known_reference and not needs_client:
            await destination.update(record, known_reference, client_reference=client_reference)
            return SyncAction.UPDATED, known_reference

        existing = await destination.search_by_identity(record)
        if existing is not None and not is_changed:
            return SyncAction.SKIPPED, existing
        if needs_client:
            raise UnresolvedClientError(
                "destination client reference not found; sync clients first"
            )
        if existing is not None:
            await destination.update(record, existing, client_reference=client_reference)
            return SyncAction.UPDATED, existing

        reference = await destination.create(record, client_reference=client_reference)
        return SyncAction.CREATED, reference

    async def _release(self, destination: DestinationAdapter) -> None:
        try:
            await destination.disconnect()
        except Exception:
            # Keep the run's own outcome; a failed disconnect is only logged
            logger.exception("Failed to release destination session")

    def _finish(
        self,
        ctx: _RunContext,
        started_at,
        selected: List[EntityType],
        status: RunStatus,
    ) -> RunSummary:
        summary = RunSummary.build(ctx.run_id, started_at, utcnow(), ctx.results)
        if ctx.use_ledger:
            self.ledger.complete_run(
                ctx.run_id, selected, summary.counts.model_dump(), status
            )
        return summary
