"""SQLModel engine construction for the ledger database."""
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine


def create_ledger_engine(database_url: str) -> Engine:
    """Build an engine and make sure the ledger schema is current.

    Safe to call against an existing ledger file: tables are created only if
    missing and migrations only add absent columns.
    """
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}  # FastAPI worker threads
        if ":memory:" in database_url or database_url == "sqlite://":
            # One shared connection, otherwise every session sees an empty DB
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    # Import models so metadata is populated before create_all
    from clinisync.models.ledger import SyncRecord, SyncRun  # noqa
    SQLModel.metadata.create_all(engine)
    from clinisync.db.migrations import run_migrations
    run_migrations(engine)
    return engine
