"""
SyncService — one end-to-end run: fetch → detect → orchestrate.

The source phase finishes completely before any destination work starts.
Only one run may be active per service; a second trigger while a run is in
progress gets SyncInProgressError instead of being queued. Callers that start
the run later (background tasks) reserve it first with claim(), so the
conflict is reported to them and not to the task.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from clinisync.destination.factory import DestinationFactory
from clinisync.errors import SourceFetchError, SyncInProgressError
from clinisync.ledger.change_detector import ChangeDetector, as_new_changes
from clinisync.ledger.store import LedgerStore
from clinisync.source.base import SourceProvider
from clinisync.sync.models import DateRange, RunSummary, SyncOptions
from clinisync.sync.orchestrator import SyncOrchestrator
from clinisync.sync.retry import call_with_retry

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    summary: RunSummary
    fetched: Dict[str, int]

    @property
    def status(self) -> str:
        """Trigger-level status: "completed_with_errors" when any item failed."""
        return "completed_with_errors" if self.summary.has_errors else "completed"


class SyncService:
    """Runs fetch, change detection and delivery, one run at a time."""

    def __init__(
        self,
        ledger: LedgerStore,
        destination_factory: DestinationFactory,
        fetch_max_attempts: int = 3,
        fetch_retry_base_delay: float = 1.0,
    ):
        """
        Args:
            ledger: LedgerStore shared by every run of this service.
            destination_factory: Builds a fresh (unconnected) adapter per run.
            fetch_max_attempts: Attempts for the source fetch before giving up.
            fetch_retry_base_delay: First backoff delay in seconds.
        """
        self.ledger = ledger
        self.destination_factory = destination_factory
        self.fetch_max_attempts = fetch_max_attempts
        self.fetch_retry_base_delay = fetch_retry_base_delay
        self._active = False

    @property
    def running(self) -> bool:
        return self._active

    def claim(self) -> None:
        """Reserve the next run. The holder must call run(..., claimed=True).

        Synchronous, so checking and reserving cannot be interleaved with
        another trigger on the same event loop.

        Raises:
            SyncInProgressError: if a run is active or already reserved.
        """
        if self.running:
            raise SyncInProgressError("A sync run is already in progress")
        self._active = True

    def release(self) -> None:
        self._active = False

    async def run(
        self,
        source: SourceProvider,
        options: Optional[SyncOptions] = None,
        date_range: Optional[DateRange] = None,
        claimed: bool = False,
    ) -> SyncOutcome:
        """
        Execute one full sync run.

        Args:
            claimed: True when the caller already holds the reservation from
                claim(); it is released when the run ends either way.

        Raises:
            SyncInProgressError: if another run is active (and claimed is False).
            SourceFetchError: if the source fetch fails (no destination work done).
            Any run-level error from SyncOrchestrator.run().
        """
        if not claimed:
            self.claim()

        try:
            options = options or SyncOptions()
            data = await self._fetch(source, date_range)

            if options.use_ledger:
                changes = ChangeDetector(self.ledger).detect_all(data)
            else:
                changes = as_new_changes(data)

            orchestrator = SyncOrchestrator(self.ledger if options.use_ledger else None)
            summary = await orchestrator.run(changes, self.destination_factory(), options)
            return SyncOutcome(summary=summary, fetched=data.counts())
        finally:
            self.release()

    async def _fetch(self, source: SourceProvider, date_range: Optional[DateRange]):
        try:
            return await call_with_retry(
                source.fetch_all,
                date_range,
                max_attempts=self.fetch_max_attempts,
                base_delay=self.fetch_retry_base_delay,
                no_retry=(SourceFetchError,),
            )
        except SourceFetchError:
            raise
        except Exception as exc:
            raise SourceFetchError(f"Source fetch failed: {exc}") from exc
