"""Change detection: partition fetched records into new / changed / unchanged."""
import logging
from typing import Iterable

from clinisync.ledger.fingerprint import fingerprint
from clinisync.ledger.store import LedgerStore
from clinisync.models.ledger import EntityType, SyncStatus
from clinisync.models.records import FetchedData, SourceRecord
from clinisync.sync.models import ChangeSet, DetectedChanges

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Compares fetched records against the ledger. Reads only, never writes."""

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    def detect(self, records: Iterable[SourceRecord], entity_type: EntityType) -> ChangeSet:
        """
        Classify each record, in order:

          1. no ledger entry                -> new
          2. entry left pending by a crash  -> changed (outcome unknown, retry)
          3. entry marked failed            -> changed (re-trigger is the retry)
          4. stored hash differs            -> changed
          5. otherwise                      -> unchanged

        Whether an unchanged record without a destination reference should be
        re-processed is decided by the orchestrator, not here.
        """
        entity_type = EntityType(entity_type)
        result = ChangeSet()

        for record in records:
            existing = self.ledger.find(record.source_id, entity_type)
            if existing is None:
                result.new.append(record)
            elif existing.sync_status in (SyncStatus.PENDING.value, SyncStatus.FAILED.value):
                result.changed.append(record)
            elif existing.data_hash != fingerprint(record):
                result.changed.append(record)
            else:
                result.unchanged.append(record)

        logger.info(
            "Detected %s changes: %d new, %d changed, %d unchanged",
            entity_type.value,
            len(result.new),
            len(result.changed),
            len(result.unchanged),
        )
        return result

    def detect_all(self, data: FetchedData) -> DetectedChanges:
        return DetectedChanges(
            clients=self.detect(data.clients, EntityType.CLIENT),
            appointments=self.detect(data.appointments, EntityType.APPOINTMENT),
            session_notes=self.detect(data.session_notes, EntityType.SESSION_NOTE),
        )


def as_new_changes(data: FetchedData) -> DetectedChanges:
    """Treat every fetched record as new (runs without a ledger)."""
    return DetectedChanges(
        clients=ChangeSet(new=list(data.clients)),
        appointments=ChangeSet(new=list(data.appointments)),
        session_notes=ChangeSet(new=list(data.session_notes)),
    )
