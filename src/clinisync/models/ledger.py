"""Ledger tables: per-record sync state and per-run summaries."""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy import JSON, Column, Index, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    CLIENT = "client"
    APPOINTMENT = "appointment"
    SESSION_NOTE = "session_note"


# Clients first: appointments and notes resolve their client's destination
# reference from the ledger.
ENTITY_ORDER: List[EntityType] = [
    EntityType.CLIENT,
    EntityType.APPOINTMENT,
    EntityType.SESSION_NOTE,
]


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunMode(str, Enum):
    INTERACTIVE = "interactive"
    AUTOMATED = "automated"


class SyncRecord(SQLModel, table=True):
    """One row per (source_id, entity_type): what was last pushed and how it went."""

    __tablename__ = "sync_records"
    __table_args__ = (
        UniqueConstraint("source_id", "entity_type", name="uq_source_entity"),
        Index("idx_entity_status", "entity_type", "sync_status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_id: str = Field(index=True)
    entity_type: str  # EntityType value
    data_hash: str
    sync_status: str = SyncStatus.PENDING.value
    destination_reference: Optional[str] = None
    error_message: Optional[str] = None  # only set when sync_status == "failed"
    last_synced_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SyncRun(SQLModel, table=True):
    """One row per orchestrator invocation."""

    __tablename__ = "sync_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(unique=True, index=True)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    mode: str = RunMode.AUTOMATED.value
    dry_run: bool = False
    entity_types: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    counts: Dict[str, int] = Field(default_factory=dict, sa_column=Column(JSON))
    status: str = RunStatus.RUNNING.value
