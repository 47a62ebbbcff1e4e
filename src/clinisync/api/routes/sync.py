"""Sync trigger, status and ledger routes."""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from clinisync.errors import SyncError, SyncInProgressError
from clinisync.ledger.store import LedgerStore
from clinisync.models.ledger import ENTITY_ORDER, EntityType, RunMode, SyncRecord, SyncRun, SyncStatus
from clinisync.models.records import FetchedData
from clinisync.source.base import SourceProvider
from clinisync.source.inline import InlineSourceProvider
from clinisync.source.json_file import JsonFileSourceProvider
from clinisync.sync.models import DateRange, RunSummary, SyncOptions
from clinisync.sync.service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter()


class InlineData(BaseModel):
    clients: List[Dict[str, Any]] = []
    appointments: List[Dict[str, Any]] = []
    session_notes: List[Dict[str, Any]] = []


class SyncRunRequest(BaseModel):
    entity_types: Optional[List[EntityType]] = None  # None = all
    dry_run: bool = False
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    mode: RunMode = RunMode.AUTOMATED
    data: Optional[InlineData] = None  # None = read from the configured source


class SyncRunResponse(BaseModel):
    status: str  # "completed" | "completed_with_errors"
    summary: RunSummary
    fetched: Dict[str, int]


class SyncStatusResponse(BaseModel):
    status: str
    run_id: Optional[str] = None
    mode: Optional[str] = None
    dry_run: Optional[bool] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    entity_types: Optional[List[str]] = None
    counts: Optional[Dict[str, int]] = None


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def get_ledger(request: Request) -> LedgerStore:
    return request.app.state.ledger


def _build_source(request: Request, body: SyncRunRequest) -> SourceProvider:
    if body.data is not None:
        try:
            data = FetchedData.from_payloads(
                clients=body.data.clients,
                appointments=body.data.appointments,
                session_notes=body.data.session_notes,
            )
        except ValidationError as exc:
            raise HTTPException(
                status_code=422,
                detail=exc.errors(include_url=False, include_context=False),
            )
        return InlineSourceProvider(data)
    return JsonFileSourceProvider(request.app.state.settings.source_export_dir)


def _options(body: SyncRunRequest) -> SyncOptions:
    return SyncOptions(
        dry_run=body.dry_run,
        entity_types=list(body.entity_types) if body.entity_types else list(ENTITY_ORDER),
        mode=body.mode,
    )


def _date_range(body: SyncRunRequest) -> Optional[DateRange]:
    if body.date_from is None and body.date_to is None:
        return None
    return DateRange(date_from=body.date_from, date_to=body.date_to)


@router.post("/run", response_model=SyncRunResponse)
async def run_sync(
    body: SyncRunRequest,
    request: Request,
    service: SyncService = Depends(get_sync_service),
):
    """
    Run a sync to completion and return its summary.

    Item failures are reported as "completed_with_errors"; run-level failures
    return 500. A run already in progress returns 409.
    """
    source = _build_source(request, body)
    logger.info(
        "Sync triggered via API (dry_run=%s, entities=%s, inline=%s)",
        body.dry_run, body.entity_types, body.data is not None,
    )
    try:
        outcome = await service.run(source, _options(body), _date_range(body))
    except SyncInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (SyncError, SQLAlchemyError) as exc:
        logger.error("Sync failed via API: %s", exc)
        raise HTTPException(status_code=500, detail=f"Sync failed: {exc}")

    return SyncRunResponse(status=outcome.status, summary=outcome.summary, fetched=outcome.fetched)


async def _do_sync(
    service: SyncService,
    source: SourceProvider,
    options: SyncOptions,
    date_range: Optional[DateRange],
) -> None:
    """Background task: run the claimed sync and log the outcome; there is no caller to raise to."""
    try:
        outcome = await service.run(source, options, date_range, claimed=True)
    except (SyncError, SQLAlchemyError) as exc:
        logger.error("Background sync failed: %s", exc)
        return
    logger.info(
        "Background sync %s %s: %s",
        outcome.summary.run_id, outcome.status, outcome.summary.counts.model_dump(),
    )


@router.post("/trigger", status_code=202)
async def trigger_sync(
    body: SyncRunRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    service: SyncService = Depends(get_sync_service),
):
    """
    Start a sync in the background. Returns immediately; poll /sync/status.

    The run is reserved before responding, so a second trigger gets 409 even
    if the first background task has not started yet.
    """
    source = _build_source(request, body)
    try:
        service.claim()
    except SyncInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    background_tasks.add_task(_do_sync, service, source, _options(body), _date_range(body))
    return {"message": "Sync started", "dry_run": body.dry_run}


def _status_response(run: SyncRun) -> SyncStatusResponse:
    return SyncStatusResponse(
        status=run.status,
        run_id=run.run_id,
        mode=run.mode,
        dry_run=run.dry_run,
        started_at=run.started_at,
        completed_at=run.completed_at,
        entity_types=run.entity_types,
        counts=run.counts,
    )


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(ledger: LedgerStore = Depends(get_ledger)):
    """Return the status of the most recent sync run."""
    run = ledger.latest_run()
    if not run:
        return SyncStatusResponse(status="never_run")
    return _status_response(run)


@router.get("/runs/{run_id}", response_model=SyncStatusResponse)
def get_run(run_id: str, ledger: LedgerStore = Depends(get_ledger)):
    run = ledger.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Sync run not found")
    return _status_response(run)


@router.get("/records", response_model=List[SyncRecord])
def list_records(
    entity_type: Optional[EntityType] = None,
    status: Optional[SyncStatus] = None,
    limit: int = 100,
    ledger: LedgerStore = Depends(get_ledger),
):
    """List ledger entries, most recently updated first."""
    return ledger.list_records(entity_type=entity_type, status=status, limit=limit)


@router.get("/records/summary")
def records_summary(ledger: LedgerStore = Depends(get_ledger)):
    """Ledger entry counts per entity type and sync status."""
    return ledger.count_by_status()
