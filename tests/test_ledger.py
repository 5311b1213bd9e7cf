"""
Tests for the progress ledger and its stores.
"""

import json

import pytest

from config.settings import TrackingConfig
from src.tracking import (
    InMemoryLedgerStore,
    JsonFileLedgerStore,
    LedgerStatus,
    ProgressLedger,
    SqliteLedgerStore,
    create_ledger,
)


@pytest.fixture
def memory_ledger():
    ledger = ProgressLedger(InMemoryLedgerStore())
    ledger.load()
    return ledger


class TestProgressLedger:
    def test_record_saves_immediately(self, memory_ledger):
        memory_ledger.record("wine_a", LedgerStatus.UPDATED)
        memory_ledger.record("wine_b", LedgerStatus.FAILED, "no match in 6 candidate URL(s)")

        assert memory_ledger.store.saves == 2
        document = memory_ledger.store.document
        assert document["processedIds"] == ["wine_a", "wine_b"]
        assert document["updatedIds"] == ["wine_a"]
        assert document["failedIds"] == [{"id": "wine_b", "reason": "no match in 6 candidate URL(s)"}]
        assert document["lastUpdate"].endswith("Z")

    def test_terminal_statuses_are_not_reprocessed(self, memory_ledger):
        memory_ledger.record("updated", LedgerStatus.UPDATED)
        memory_ledger.record("skipped", LedgerStatus.SKIPPED)
        memory_ledger.record("processed", LedgerStatus.PROCESSED)
        memory_ledger.record("failed", LedgerStatus.FAILED, "boom")

        assert not memory_ledger.should_process("updated")
        assert not memory_ledger.should_process("skipped")
        assert not memory_ledger.should_process("processed")
        assert memory_ledger.should_process("failed")
        assert memory_ledger.should_process("never-seen")

    def test_retry_promotes_out_of_failed(self, memory_ledger):
        memory_ledger.record("wine_a", LedgerStatus.FAILED, "timeout")

        assert memory_ledger.begin_retry("wine_a")
        assert memory_ledger.status("wine_a") is None
        assert memory_ledger.store.document["failedIds"] == []

        memory_ledger.record("wine_a", LedgerStatus.UPDATED)
        assert memory_ledger.status("wine_a") is LedgerStatus.UPDATED

    def test_repeat_failure_recorded_once(self, memory_ledger):
        memory_ledger.record("wine_a", LedgerStatus.FAILED, "first")
        memory_ledger.begin_retry("wine_a")
        memory_ledger.record("wine_a", LedgerStatus.FAILED, "second")

        assert [e.id for e in memory_ledger.state.failed_ids] == ["wine_a"]
        assert memory_ledger.state.failure_reason("wine_a") == "second"

    def test_begin_retry_on_unknown_id(self, memory_ledger):
        assert not memory_ledger.begin_retry("never-seen")
        assert memory_ledger.store.saves == 0

    def test_reset(self, memory_ledger):
        memory_ledger.record("wine_a", LedgerStatus.UPDATED)

        memory_ledger.reset()

        assert memory_ledger.should_process("wine_a")
        assert memory_ledger.store.load().processed_ids == []

    def test_stats(self, memory_ledger):
        memory_ledger.record("a", LedgerStatus.UPDATED)
        memory_ledger.record("b", LedgerStatus.SKIPPED)
        memory_ledger.record("c", LedgerStatus.FAILED, "x")

        stats = memory_ledger.stats()

        assert stats["processed"] == 3
        assert stats["updated"] == 1
        assert stats["skipped"] == 1
        assert stats["failed"] == 1

    def test_resume_from_saved_document(self, memory_ledger):
        """A fresh ledger over the same store sees the previous run's outcomes."""
        memory_ledger.record("wine_a", LedgerStatus.UPDATED)
        memory_ledger.record("wine_b", LedgerStatus.FAILED, "timeout")

        resumed = ProgressLedger(InMemoryLedgerStore(memory_ledger.store.document))
        resumed.load()

        assert not resumed.should_process("wine_a")
        assert resumed.should_process("wine_b")
        assert resumed.state.failure_reason("wine_b") == "timeout"


class TestJsonFileLedgerStore:
    def test_round_trip_document_format(self, tmp_path):
        path = tmp_path / "wines-progress.json"
        ledger = ProgressLedger(JsonFileLedgerStore(path))
        ledger.load()
        ledger.record("wine_a", LedgerStatus.UPDATED)
        ledger.record("wine_b", LedgerStatus.FAILED, "404")

        document = json.loads(path.read_text(encoding="utf-8"))

        assert set(document) == {"processedIds", "failedIds", "updatedIds", "skippedIds", "lastUpdate"}
        assert document["failedIds"] == [{"id": "wine_b", "reason": "404"}]
        assert not path.with_suffix(".json.tmp").exists()

        reloaded = ProgressLedger(JsonFileLedgerStore(path))
        reloaded.load()
        assert reloaded.status("wine_a") is LedgerStatus.UPDATED

    def test_missing_file_is_empty_state(self, tmp_path):
        state = JsonFileLedgerStore(tmp_path / "none.json").load()

        assert state.processed_ids == []

    def test_reads_legacy_document_without_optional_lists(self, tmp_path):
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps({"processedIds": ["a"], "failedIds": [{"id": "b", "reason": "x"}]}))

        state = JsonFileLedgerStore(path).load()

        assert state.processed_ids == ["a"]
        assert state.failure_reason("b") == "x"

    def test_corrupt_file_is_moved_aside(self, tmp_path):
        path = tmp_path / "wines-progress.json"
        path.write_text("{not json")

        state = JsonFileLedgerStore(path).load()

        assert state.processed_ids == []
        assert not path.exists()
        assert (tmp_path / "wines-progress.json.corrupt").read_text() == "{not json"

    def test_clear(self, tmp_path):
        path = tmp_path / "wines-progress.json"
        store = JsonFileLedgerStore(path)
        ledger = ProgressLedger(store)
        ledger.record("a", LedgerStatus.UPDATED)

        ledger.reset()

        assert not path.exists()


class TestSqliteLedgerStore:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "wines-progress.db"
        ledger = ProgressLedger(SqliteLedgerStore(path))
        ledger.load()
        ledger.record("wine_a", LedgerStatus.UPDATED)
        ledger.record("wine_b", LedgerStatus.SKIPPED)
        ledger.record("wine_c", LedgerStatus.FAILED, "no match")

        reloaded = ProgressLedger(SqliteLedgerStore(path))
        state = reloaded.load()

        assert state.processed_ids == ["wine_a", "wine_b", "wine_c"]
        assert reloaded.status("wine_a") is LedgerStatus.UPDATED
        assert reloaded.status("wine_b") is LedgerStatus.SKIPPED
        assert state.failure_reason("wine_c") == "no match"
        assert state.last_update == ledger.state.last_update

    def test_clear(self, tmp_path):
        store = SqliteLedgerStore(tmp_path / "x.db")
        ledger = ProgressLedger(store)
        ledger.record("a", LedgerStatus.UPDATED)

        ledger.reset()

        assert store.load().processed_ids == []


class TestCreateLedger:
    @pytest.mark.parametrize(
        "backend, store_cls",
        [("json", JsonFileLedgerStore), ("sqlite", SqliteLedgerStore), ("memory", InMemoryLedgerStore)],
    )
    def test_backend_selection(self, tmp_path, backend, store_cls):
        ledger = create_ledger(TrackingConfig(backend=backend, base_dir=tmp_path), "wines")

        assert isinstance(ledger.store, store_cls)

    def test_disabled_tracking_uses_memory(self, tmp_path):
        ledger = create_ledger(TrackingConfig(enabled=False, base_dir=tmp_path), "wines")

        assert isinstance(ledger.store, InMemoryLedgerStore)
