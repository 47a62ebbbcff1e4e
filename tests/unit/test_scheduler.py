"""Tests for APScheduler job configuration and the automated sync job body."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from clinisync.errors import SourceFetchError
from clinisync.models.ledger import RunMode
from clinisync.scheduler.jobs import _automated_sync, build_scheduler
from clinisync.source.json_file import JsonFileSourceProvider


class TestBuildScheduler:
    def test_returns_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_automated_sync_job_registered(self):
        scheduler = build_scheduler(MagicMock())
        job_ids = [job.id for job in scheduler.get_jobs()]
        assert "automated_sync" in job_ids

    def test_sync_hour_from_settings(self):
        """Scheduler respects the SYNC_HOUR setting."""
        with patch("clinisync.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.sync_hour = 5
            scheduler = build_scheduler(MagicMock())

        job = next(j for j in scheduler.get_jobs() if j.id == "automated_sync")
        assert job.trigger.__class__.__name__ == "CronTrigger"
        fields = {f.name: f for f in job.trigger.fields}
        assert str(fields["hour"]) == "5"

    def test_scheduler_not_running_on_creation(self):
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


class TestAutomatedSyncJob:
    @pytest.mark.asyncio
    async def test_runs_ledger_backed_automated_sync(self, tmp_path):
        service = MagicMock()
        service.run = AsyncMock()
        with patch("clinisync.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.source_export_dir = str(tmp_path)
            mock_settings.return_value.dry_run = False
            await _automated_sync(service=service)

        service.run.assert_awaited_once()
        source, options = service.run.await_args.args
        assert isinstance(source, JsonFileSourceProvider)
        assert source.export_dir == tmp_path
        assert options.mode == RunMode.AUTOMATED
        assert options.use_ledger is True
        assert options.dry_run is False

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self, tmp_path):
        """The job catches run failures so the scheduler stays alive."""
        service = MagicMock()
        service.run = AsyncMock(side_effect=SourceFetchError("export missing"))
        with patch("clinisync.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.source_export_dir = str(tmp_path)
            mock_settings.return_value.dry_run = False
            await _automated_sync(service=service)  # should not raise
