"""
APScheduler jobs for automated sync runs.

A nightly run catches anything the on-demand trigger missed. Re-running is
safe: the ledger suppresses duplicates, so an unchanged night pushes nothing.

The scheduler runs inside the long-lived entrypoint process (__main__.py).
"""
import logging
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from clinisync.config import get_settings
from clinisync.models.ledger import RunMode
from clinisync.sync.models import SyncOptions
from clinisync.sync.service import SyncService

logger = logging.getLogger(__name__)


def build_scheduler(service: SyncService) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        service: SyncService shared with any other trigger in the process, so
            a scheduled run and a manual run never overlap.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _automated_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="automated_sync",
        replace_existing=True,
        kwargs={"service": service},
    )

    return scheduler


async def _automated_sync(service: SyncService) -> None:
    """
    Scheduled job: ledger-backed sync of everything in the source export.

    Run-level failures are logged, not raised, so the scheduler stays alive.
    """
    from clinisync.source.json_file import JsonFileSourceProvider

    settings = get_settings()
    logger.info("Automated sync starting")

    source = JsonFileSourceProvider(Path(settings.source_export_dir))
    options = SyncOptions(dry_run=settings.dry_run, mode=RunMode.AUTOMATED)
    try:
        outcome = await service.run(source, options)
    except Exception as exc:
        logger.error("Automated sync failed: %s", exc)
        return

    logger.info(
        "Automated sync %s %s: %s",
        outcome.summary.run_id, outcome.status, outcome.summary.counts.model_dump(),
    )
