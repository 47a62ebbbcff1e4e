"""
Main entrypoint.

Usage:
    python -m clinisync                          # scheduler: nightly automated sync
    python -m clinisync once [--dry-run] [--entities client appointment]
    python -m clinisync status                   # ledger counts + latest run
    uvicorn clinisync.api.main:app --host 0.0.0.0 --port 8000  # HTTP trigger
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _build_service(ledger):
    from clinisync.config import get_settings
    from clinisync.destination.factory import load_destination_factory
    from clinisync.sync.service import SyncService

    settings = get_settings()
    return SyncService(
        ledger=ledger,
        destination_factory=load_destination_factory(settings.destination_factory),
        fetch_max_attempts=settings.fetch_max_attempts,
        fetch_retry_base_delay=settings.fetch_retry_base_delay,
    )


async def _run_once(dry_run: bool, entities: Optional[List[str]]) -> int:
    from clinisync.config import get_settings
    from clinisync.ledger.store import open_ledger
    from clinisync.models.ledger import ENTITY_ORDER, EntityType, RunMode
    from clinisync.source.json_file import JsonFileSourceProvider
    from clinisync.sync.models import SyncOptions

    settings = get_settings()
    options = SyncOptions(
        dry_run=dry_run or settings.dry_run,
        entity_types=[EntityType(e) for e in entities] if entities else list(ENTITY_ORDER),
        mode=RunMode.AUTOMATED,
    )
    with open_ledger(settings.database_url) as ledger:
        service = _build_service(ledger)
        source = JsonFileSourceProvider(Path(settings.source_export_dir))
        outcome = await service.run(source, options)

    print(json.dumps(
        {"status": outcome.status, "summary": outcome.summary.model_dump(mode="json")},
        indent=2,
    ))
    return 1 if outcome.summary.has_errors else 0


def _show_status() -> None:
    from clinisync.config import get_settings
    from clinisync.ledger.store import open_ledger

    settings = get_settings()
    with open_ledger(settings.database_url) as ledger:
        run = ledger.latest_run()
        print(json.dumps(
            {
                "records": ledger.count_by_status(),
                "latest_run": run.model_dump(mode="json") if run else None,
            },
            indent=2,
        ))


async def _run_scheduler() -> None:
    from clinisync.config import get_settings
    from clinisync.ledger.store import open_ledger
    from clinisync.scheduler.jobs import build_scheduler

    settings = get_settings()
    with open_ledger(settings.database_url) as ledger:
        scheduler = build_scheduler(_build_service(ledger))
        scheduler.start()
        logger.info(
            "Scheduler started (automated sync at %02d:00). Press Ctrl+C to stop.",
            settings.sync_hour,
        )
        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down...")
        finally:
            scheduler.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    from clinisync.config import get_settings

    parser = argparse.ArgumentParser(prog="clinisync", description="Practice record sync")
    sub = parser.add_subparsers(dest="command")
    once = sub.add_parser("once", help="Run one automated sync and print the summary")
    once.add_argument("--dry-run", action="store_true", help="Skip all destination calls")
    once.add_argument(
        "--entities",
        nargs="+",
        choices=["client", "appointment", "session_note"],
        help="Entity types to sync (default: all)",
    )
    sub.add_parser("status", help="Show ledger counts and the latest run")
    args = parser.parse_args(argv)

    _configure_logging(get_settings().log_level)

    if args.command == "once":
        from clinisync.errors import SyncError

        try:
            return asyncio.run(_run_once(args.dry_run, args.entities))
        except SyncError as exc:
            logger.error("Sync failed: %s", exc)
            return 1
    if args.command == "status":
        _show_status()
        return 0
    asyncio.run(_run_scheduler())
    return 0


if __name__ == "__main__":
    sys.exit(main())
