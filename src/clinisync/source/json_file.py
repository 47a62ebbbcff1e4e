"""
Source provider reading JSON exports from the system of record.

Expects a directory containing:

    clients.json          [ {client payload}, ... ]
    appointments.json     [ {appointment payload}, ... ]
    session_notes.json    [ {note payload}, ... ]

Missing files are treated as empty. Files are read in worker threads, in
parallel, so the event loop is never blocked.
"""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from clinisync.errors import SourceFetchError
from clinisync.models.ledger import EntityType
from clinisync.models.records import FetchedData, SourceRecord
from clinisync.source.base import SourceProvider, filter_appointments
from clinisync.sync.models import DateRange

logger = logging.getLogger(__name__)

EXPORT_FILES = {
    EntityType.CLIENT: "clients.json",
    EntityType.APPOINTMENT: "appointments.json",
    EntityType.SESSION_NOTE: "session_notes.json",
}


class JsonFileSourceProvider(SourceProvider):
    def __init__(self, export_dir: Path):
        self.export_dir = Path(export_dir)

    async def fetch_all(self, date_range: Optional[DateRange] = None) -> FetchedData:
        """
        Load and validate all export files.

        Raises:
            SourceFetchError: if the directory is missing or any file is
                malformed (bad JSON, not a list, or a record fails validation).
        """
        if not self.export_dir.is_dir():
            raise SourceFetchError(f"Export directory not found: {self.export_dir}")

        clients, appointments, notes = await asyncio.gather(
            asyncio.to_thread(self._load, EntityType.CLIENT),
            asyncio.to_thread(self._load, EntityType.APPOINTMENT),
            asyncio.to_thread(self._load, EntityType.SESSION_NOTE),
        )
        data = FetchedData(
            clients=clients,
            appointments=filter_appointments(appointments, date_range),
            session_notes=notes,
        )
        logger.info("Source data loaded from %s: %s", self.export_dir, data.counts())
        return data

    def _load(self, entity_type: EntityType) -> List[SourceRecord]:
        path = self.export_dir / EXPORT_FILES[entity_type]
        if not path.exists():
            logger.info("No %s export at %s; treating as empty", entity_type.value, path)
            return []

        try:
            rows: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SourceFetchError(f"Could not read {path}: {exc}") from exc
        if not isinstance(rows, list):
            raise SourceFetchError(f"{path} must contain a JSON list")

        records = []
        for i, row in enumerate(rows):
            try:
                records.append(SourceRecord.from_payload(entity_type, _as_dict(row)))
            except (ValidationError, TypeError) as exc:
                raise SourceFetchError(f"{path} item {i} is invalid: {exc}") from exc
        return records


def _as_dict(row: Any) -> Dict[str, Any]:
    if not isinstance(row, dict):
        raise TypeError(f"expected an object, got {type(row).__name__}")
    return row
