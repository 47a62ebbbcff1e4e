"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from clinisync.api.routes import sync as sync_routes
from clinisync.config import Settings, get_settings
from clinisync.destination.factory import DestinationFactory, load_destination_factory
from clinisync.ledger.store import LedgerStore, open_ledger
from clinisync.sync.service import SyncService


def create_app(
    settings: Optional[Settings] = None,
    ledger: Optional[LedgerStore] = None,
    destination_factory: Optional[DestinationFactory] = None,
) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        settings: Defaults to get_settings().
        ledger: An already-open LedgerStore. When omitted the app opens one
            from settings.database_url for its lifetime and closes it on shutdown.
        destination_factory: Defaults to the factory named by
            settings.destination_factory.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        factory = destination_factory or load_destination_factory(settings.destination_factory)

        def _start(store: LedgerStore) -> None:
            app.state.settings = settings
            app.state.ledger = store
            app.state.sync_service = SyncService(
                ledger=store,
                destination_factory=factory,
                fetch_max_attempts=settings.fetch_max_attempts,
                fetch_retry_base_delay=settings.fetch_retry_base_delay,
            )

        if ledger is not None:
            _start(ledger)
            yield
        else:
            with open_ledger(settings.database_url) as store:
                _start(store)
                yield

    app = FastAPI(
        title="Clinisync API",
        description="Idempotent sync of practice records into the practice-management app",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
