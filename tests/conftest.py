"""Shared test fixtures."""
import itertools
from typing import Any, Dict
from unittest.mock import AsyncMock

import pytest

from clinisync.db.engine import create_ledger_engine
from clinisync.ledger.store import LedgerStore
from clinisync.models.ledger import EntityType
from clinisync.models.records import SourceRecord


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite ledger. One shared connection (StaticPool) per test."""
    engine = create_ledger_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture(name="ledger")
def ledger_fixture(engine) -> LedgerStore:
    return LedgerStore(engine)


# ─── Record builders ─────────────────────────────────────────────────────────

def _client(source_id: str = "c1", **overrides: Any) -> SourceRecord:
    payload: Dict[str, Any] = {
        "id": f"ps-{source_id}",
        "source": "playspace",
        "sourceId": source_id,
        "firstName": "Ada",
        "lastName": f"Lovelace-{source_id}",
        "email": f"{source_id}@example.com",
    }
    payload.update(overrides)
    return SourceRecord.from_payload(EntityType.CLIENT, payload)


def _appointment(source_id: str = "a1", client_id: str = "c1", **overrides: Any) -> SourceRecord:
    payload: Dict[str, Any] = {
        "id": f"ps-{source_id}",
        "source": "playspace",
        "sourceId": source_id,
        "clientId": client_id,
        "startTime": "2025-01-15T09:00:00Z",
        "endTime": "2025-01-15T09:50:00Z",
        "type": "telehealth",
        "status": "scheduled",
    }
    payload.update(overrides)
    return SourceRecord.from_payload(EntityType.APPOINTMENT, payload)


def _note(source_id: str = "n1", client_id: str = "c1", **overrides: Any) -> SourceRecord:
    payload: Dict[str, Any] = {
        "id": f"ps-{source_id}",
        "source": "playspace",
        "sourceId": source_id,
        "clientId": client_id,
        "date": "2025-01-15",
        "content": "Session went well.",
    }
    payload.update(overrides)
    return SourceRecord.from_payload(EntityType.SESSION_NOTE, payload)


@pytest.fixture
def make_client():
    return _client


@pytest.fixture
def make_appointment():
    return _appointment


@pytest.fixture
def make_note():
    return _note


# ─── Mock destination ────────────────────────────────────────────────────────

def _mock_destination() -> AsyncMock:
    """AsyncMock destination: nothing exists downstream, create() hands out refs."""
    counter = itertools.count(1)
    destination = AsyncMock()
    destination.search_by_identity = AsyncMock(return_value=None)
    destination.create = AsyncMock(
        side_effect=lambda record, client_reference=None: f"owl-{record.source_id}-{next(counter)}"
    )
    destination.update = AsyncMock(return_value=None)
    return destination


@pytest.fixture
def destination() -> AsyncMock:
    return _mock_destination()


@pytest.fixture
def make_destination():
    return _mock_destination
