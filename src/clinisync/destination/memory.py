"""In-process destination used for local runs, demos and tests.

Records live in a dict keyed by generated reference. Clients are matched by
name (as a practice-management UI search would); everything else by source id.
"""
import itertools
import logging
from typing import Dict, Optional, Set

from clinisync.destination.base import DestinationAdapter
from clinisync.errors import DestinationSessionError
from clinisync.models.ledger import EntityType
from clinisync.models.records import SourceRecord

logger = logging.getLogger(__name__)


class InMemoryDestination(DestinationAdapter):
    """Loopback destination that assigns references like "client-1"."""

    def __init__(self, update_types: Optional[Set[EntityType]] = None):
        """
        Args:
            update_types: Entity types that support update(). Defaults to all.
        """
        self.records: Dict[str, Dict] = {}
        self.update_types = set(update_types) if update_types is not None else set(EntityType)
        self.connected = False
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        self.connected = True
        logger.info("Connected to in-memory destination")

    async def disconnect(self) -> None:
        self.connected = False

    def _require_session(self) -> None:
        if not self.connected:
            raise DestinationSessionError("Not connected; call connect() first")

    async def search_by_identity(self, record: SourceRecord) -> Optional[str]:
        self._require_session()
        for reference, stored in self.records.items():
            if stored["entity_type"] != record.entity_type:
                continue
            if record.entity_type == EntityType.CLIENT:
                if _client_name(stored["data"]) == _client_name(record.data):
                    return reference
            elif stored["source_id"] == record.source_id:
                return reference
        return None

    async def create(
        self, record: SourceRecord, *, client_reference: Optional[str] = None
    ) -> Optional[str]:
        self._require_session()
        reference = f"{record.entity_type.value}-{next(self._ids)}"
        self.records[reference] = {
            "entity_type": record.entity_type,
            "source_id": record.source_id,
            "client_reference": client_reference,
            "data": dict(record.data),
        }
        return reference

    async def update(
        self,
        record: SourceRecord,
        reference: str,
        *,
        client_reference: Optional[str] = None,
    ) -> None:
        self._require_session()
        if record.entity_type not in self.update_types:
            await super().update(record, reference, client_reference=client_reference)
        if reference not in self.records:
            raise LookupError(f"No destination record {reference!r}")
        stored = self.records[reference]
        stored["data"] = dict(record.data)
        if client_reference is not None:
            stored["client_reference"] = client_reference


def _client_name(data) -> tuple:
    return (
        (data.get("firstName") or "").strip().lower(),
        (data.get("lastName") or "").strip().lower(),
    )
