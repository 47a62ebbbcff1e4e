"""Data models for sync runs: change sets, options, per-item results, summaries."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from clinisync.models.ledger import ENTITY_ORDER, EntityType, RunMode
from clinisync.models.records import SourceRecord


class SyncAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ChangeSet:
    """Fetched records of one entity type, partitioned against the ledger."""

    new: List[SourceRecord] = field(default_factory=list)
    changed: List[SourceRecord] = field(default_factory=list)
    unchanged: List[SourceRecord] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.changed)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.changed) + len(self.unchanged)


@dataclass
class DetectedChanges:
    clients: ChangeSet = field(default_factory=ChangeSet)
    appointments: ChangeSet = field(default_factory=ChangeSet)
    session_notes: ChangeSet = field(default_factory=ChangeSet)

    def for_type(self, entity_type: EntityType) -> ChangeSet:
        return {
            EntityType.CLIENT: self.clients,
            EntityType.APPOINTMENT: self.appointments,
            EntityType.SESSION_NOTE: self.session_notes,
        }[EntityType(entity_type)]

    def summary(self) -> Dict[str, Dict[str, int]]:
        """{entity_type: {"new": n, "changed": n, "unchanged": n}} for display."""
        summary = {}
        for entity_type in ENTITY_ORDER:
            cs = self.for_type(entity_type)
            summary[entity_type.value] = {
                "new": len(cs.new),
                "changed": len(cs.changed),
                "unchanged": len(cs.unchanged),
            }
        return summary


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window applied to appointment fetches."""

    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def contains(self, moment: datetime) -> bool:
        day = moment.date()
        if self.date_from is not None and day < self.date_from:
            return False
        if self.date_to is not None and day > self.date_to:
            return False
        return True


@dataclass
class SyncOptions:
    dry_run: bool = False
    entity_types: List[EntityType] = field(default_factory=lambda: list(ENTITY_ORDER))
    mode: RunMode = RunMode.AUTOMATED
    use_ledger: bool = True


class RunCounts(BaseModel):
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


class SyncResult(BaseModel):
    """Outcome of delivering one record."""

    entity_type: EntityType
    source_id: str
    action: SyncAction
    reference: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime


class RunSummary(BaseModel):
    run_id: str
    started_at: datetime
    completed_at: datetime
    results: List[SyncResult] = Field(default_factory=list)
    counts: RunCounts = Field(default_factory=RunCounts)

    @property
    def has_errors(self) -> bool:
        return self.counts.failed > 0

    @classmethod
    def build(
        cls, run_id: str, started_at: datetime, completed_at: datetime, results: List[SyncResult]
    ) -> "RunSummary":
        counts = RunCounts(
            created=sum(1 for r in results if r.action == SyncAction.CREATED),
            updated=sum(1 for r in results if r.action == SyncAction.UPDATED),
            skipped=sum(1 for r in results if r.action == SyncAction.SKIPPED),
            failed=sum(1 for r in results if r.action == SyncAction.FAILED),
        )
        return cls(
            run_id=run_id,
            started_at=started_at,
            completed_at=completed_at,
            results=list(results),
            counts=counts,
        )
