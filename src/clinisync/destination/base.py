"""
Destination adapter interface.

The destination is a fallible remote application driven through one
exclusive interactive session. Adapters own all of its mechanics (logins,
selectors, retries, verification re-reads); the orchestrator only sees the
capability set below.

Error contract:
  - Any exception from search/create/update fails that one item only.
  - DestinationSessionError from any call means the session itself is gone
    and aborts the run.
  - update() is optional: create-only destinations leave the default, which
    raises NotImplementedError and fails just that item.
"""
from abc import ABC, abstractmethod
from typing import Optional

from clinisync.models.records import SourceRecord


class DestinationAdapter(ABC):
    """Capability interface for pushing records into the destination system."""

    async def __aenter__(self) -> "DestinationAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    @abstractmethod
    async def connect(self) -> None:
        """Acquire the destination session.

        Raises:
            DestinationSessionError: if the session cannot be established.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the session. Must be safe to call after a failed connect()."""

    @abstractmethod
    async def search_by_identity(self, record: SourceRecord) -> Optional[str]:
        """Return the destination reference of an existing matching record, or None."""

    @abstractmethod
    async def create(
        self, record: SourceRecord, *, client_reference: Optional[str] = None
    ) -> Optional[str]:
        """Create the record and return its destination reference.

        Adapters that cannot read back a reference return None.

        Args:
            record: The source record to create.
            client_reference: Destination reference of the owning client, for
                appointments and session notes.
        """

    async def update(
        self,
        record: SourceRecord,
        reference: str,
        *,
        client_reference: Optional[str] = None,
    ) -> None:
        """Overwrite the destination record at `reference` with the record's content."""
        raise NotImplementedError(
            f"{type(self).__name__} cannot update {record.entity_type.value} records"
        )
