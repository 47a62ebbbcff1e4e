"""Source provider for data pushed inline with a sync request."""
from typing import Optional

from clinisync.models.records import FetchedData
from clinisync.source.base import SourceProvider, filter_appointments
from clinisync.sync.models import DateRange


class InlineSourceProvider(SourceProvider):
    """Serves records that the caller already fetched (e.g. the HTTP request body)."""

    def __init__(self, data: FetchedData):
        self._data = data

    async def fetch_all(self, date_range: Optional[DateRange] = None) -> FetchedData:
        return FetchedData(
            clients=list(self._data.clients),
            appointments=filter_appointments(self._data.appointments, date_range),
            session_notes=list(self._data.session_notes),
        )
