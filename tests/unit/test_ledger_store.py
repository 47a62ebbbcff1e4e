"""Tests for LedgerStore record and run operations."""
import pytest
from sqlmodel import Session, select

from clinisync.ledger.store import LedgerStore, open_ledger
from clinisync.models.ledger import EntityType, RunMode, RunStatus, SyncRecord, SyncStatus


class TestSyncRecords:
    def test_find_missing_returns_none(self, ledger):
        assert ledger.find("nope", EntityType.CLIENT) is None

    def test_upsert_inserts(self, ledger):
        ledger.upsert("c1", EntityType.CLIENT, "h1", SyncStatus.SYNCED, reference="owl-1")
        record = ledger.find("c1", EntityType.CLIENT)
        assert record.data_hash == "h1"
        assert record.sync_status == "synced"
        assert record.destination_reference == "owl-1"
        assert record.error_message is None

    def test_upsert_updates_in_place(self, ledger, engine):
        ledger.upsert("c1", EntityType.CLIENT, "h1", SyncStatus.SYNCED)
        ledger.upsert("c1", EntityType.CLIENT, "h2", SyncStatus.FAILED, error="boom")
        with Session(engine) as s:
            rows = s.exec(select(SyncRecord)).all()
        assert len(rows) == 1
        assert rows[0].data_hash == "h2"
        assert rows[0].sync_status == "failed"
        assert rows[0].error_message == "boom"

    def test_key_includes_entity_type(self, ledger):
        """The same source id under two entity types is two entries."""
        ledger.upsert("x1", EntityType.CLIENT, "h1", SyncStatus.SYNCED)
        ledger.upsert("x1", EntityType.APPOINTMENT, "h2", SyncStatus.SYNCED)
        assert ledger.find("x1", EntityType.CLIENT).data_hash == "h1"
        assert ledger.find("x1", EntityType.APPOINTMENT).data_hash == "h2"

    def test_reference_is_sticky(self, ledger):
        """A known reference is never overwritten with None."""
        ledger.mark_synced("c1", EntityType.CLIENT, "h1", reference="owl-1")
        ledger.mark_pending("c1", EntityType.CLIENT, "h2")
        ledger.mark_failed("c1", EntityType.CLIENT, "h2", "timeout")
        assert ledger.find("c1", EntityType.CLIENT).destination_reference == "owl-1"

    def test_reference_can_be_replaced_by_new_value(self, ledger):
        ledger.mark_synced("c1", EntityType.CLIENT, "h1", reference="owl-1")
        ledger.mark_synced("c1", EntityType.CLIENT, "h1", reference="owl-2")
        assert ledger.find("c1", EntityType.CLIENT).destination_reference == "owl-2"

    def test_mark_pending(self, ledger):
        record = ledger.mark_pending("a1", EntityType.APPOINTMENT, "h1")
        assert record.sync_status == "pending"
        assert ledger.find("a1", EntityType.APPOINTMENT).sync_status == "pending"

    def test_synced_clears_previous_error(self, ledger):
        ledger.mark_failed("c1", EntityType.CLIENT, "h1", "boom")
        ledger.mark_synced("c1", EntityType.CLIENT, "h1", reference="owl-1")
        assert ledger.find("c1", EntityType.CLIENT).error_message is None

    def test_created_at_kept_on_update(self, ledger):
        first = ledger.mark_pending("c1", EntityType.CLIENT, "h1")
        second = ledger.mark_synced("c1", EntityType.CLIENT, "h1")
        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at

    def test_list_records_filters(self, ledger):
        ledger.mark_synced("c1", EntityType.CLIENT, "h")
        ledger.mark_failed("c2", EntityType.CLIENT, "h", "boom")
        ledger.mark_failed("a1", EntityType.APPOINTMENT, "h", "boom")

        failed = ledger.list_records(status=SyncStatus.FAILED)
        assert {r.source_id for r in failed} == {"c2", "a1"}

        failed_clients = ledger.list_records(EntityType.CLIENT, SyncStatus.FAILED)
        assert [r.source_id for r in failed_clients] == ["c2"]

    def test_count_by_status(self, ledger):
        ledger.mark_synced("c1", EntityType.CLIENT, "h")
        ledger.mark_synced("c2", EntityType.CLIENT, "h")
        ledger.mark_pending("n1", EntityType.SESSION_NOTE, "h")
        assert ledger.count_by_status() == {
            "client": {"synced": 2},
            "session_note": {"pending": 1},
        }


class TestSyncRuns:
    def test_create_run_is_running(self, ledger):
        ledger.create_run("run-1", RunMode.INTERACTIVE, dry_run=True)
        run = ledger.get_run("run-1")
        assert run.status == "running"
        assert run.mode == "interactive"
        assert run.dry_run is True
        assert run.completed_at is None
        assert run.counts == {}

    def test_complete_run(self, ledger):
        ledger.create_run("run-1", RunMode.AUTOMATED, dry_run=False)
        counts = {"created": 2, "updated": 1, "skipped": 0, "failed": 1}
        ledger.complete_run(
            "run-1", [EntityType.CLIENT, EntityType.SESSION_NOTE], counts, RunStatus.COMPLETED
        )
        run = ledger.get_run("run-1")
        assert run.status == "completed"
        assert run.counts == counts
        assert run.entity_types == ["client", "session_note"]
        assert run.completed_at is not None

    def test_complete_unknown_run_raises(self, ledger):
        with pytest.raises(LookupError):
            ledger.complete_run("ghost", [], {}, RunStatus.FAILED)

    def test_latest_run(self, ledger):
        assert ledger.latest_run() is None
        ledger.create_run("run-1", RunMode.AUTOMATED, dry_run=False)
        ledger.create_run("run-2", RunMode.AUTOMATED, dry_run=False)
        assert ledger.latest_run().run_id == "run-2"


class TestOpenLedger:
    def test_file_ledger_persists_across_opens(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'ledger.db'}"
        with open_ledger(url) as ledger:
            ledger.mark_synced("c1", EntityType.CLIENT, "h1", reference="owl-1")
        with open_ledger(url) as ledger:
            assert isinstance(ledger, LedgerStore)
            assert ledger.find("c1", EntityType.CLIENT).destination_reference == "owl-1"
