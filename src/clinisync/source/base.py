"""Source provider interface and helpers shared by implementations."""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from clinisync.models.records import FetchedData, SourceRecord
from clinisync.sync.models import DateRange

logger = logging.getLogger(__name__)


class SourceProvider(ABC):
    """Fetches the current state of every record from the system of record.

    Implementations do their own pagination and transport retries. Any
    failure should surface as a single SourceFetchError.
    """

    @abstractmethod
    async def fetch_all(self, date_range: Optional[DateRange] = None) -> FetchedData:
        """Return all records grouped by entity type.

        Args:
            date_range: Optional window applied to appointments only.
        """


def filter_appointments(
    appointments: List[SourceRecord], date_range: Optional[DateRange]
) -> List[SourceRecord]:
    """Keep appointments whose startTime falls inside date_range.

    Appointments with an unparseable startTime are kept and logged rather
    than silently dropped.
    """
    if date_range is None or (date_range.date_from is None and date_range.date_to is None):
        return list(appointments)

    kept = []
    for appt in appointments:
        start = appt.get("startTime")
        try:
            moment = datetime.fromisoformat(str(start).replace("Z", "+00:00"))
        except ValueError:
            logger.warning(
                "Appointment %s has unparseable startTime %r; keeping it",
                appt.source_id, start,
            )
            kept.append(appt)
            continue
        if date_range.contains(moment):
            kept.append(appt)
    return kept
