"""
Tests for ledger record stores.
"""

import json
import multiprocessing
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from storage import StorageError, TransactionParticipant, get_storage_backend
from storage.base import StorageReadError, StorageWriteError
from storage.json_file import JSONFileStorage
from storage.memory import MemoryStorage

SAMPLE_DISTRIBUTOR = {
    "authority": "ops-authority",
    "total_distributions": 0,
    "total_amount_distributed": 0,
    "created_at": "2025-01-01T00:00:00+00:00",
}

SAMPLE_EVENT = {
    "sequence": 1,
    "collection_id": "genesis",
    "gross_amount": 1000,
    "holder_count": 3,
    "amount_per_holder": 325,
    "timestamp": 1_700_000_000,
}


class RecordingParticipant(TransactionParticipant):
    """Participant that records the hooks it receives."""

    def __init__(self):
        self.calls = []

    def begin(self):
        self.calls.append("begin")

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")


class FailingWriteStorage(MemoryStorage):
    """Memory store whose commit fails on demand."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def _write_batch(self, handle, records, events):
        if self.fail_writes:
            raise StorageWriteError("disk full")
        super()._write_batch(handle, records, events)



def _increment_counter(path, iterations):
    """Read-modify-write one record from a separate process."""
    for _ in range(iterations):
        with JSONFileStorage(path).transaction() as txn:
            counter = txn.get("counter") or {"value": 0}
            value = counter["value"] + 1
            txn.put("counter", {"value": value})
            txn.append_event({"sequence": value, "collection_id": "genesis"})


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    """Each backend that runs without external services."""
    if request.param == "memory":
        return MemoryStorage()
    return JSONFileStorage(str(tmp_path / "ledger.json"))


class TestTransactions:
    """Transaction semantics shared by every backend."""

    def test_missing_record_is_none(self, store):
        assert store.get("distributor") is None

    def test_commit_makes_writes_visible(self, store):
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
            txn.append_event(SAMPLE_EVENT)

        assert store.get("distributor") == SAMPLE_DISTRIBUTOR
        assert store.get_events() == [SAMPLE_EVENT]

    def test_exception_discards_writes(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.put("distributor", SAMPLE_DISTRIBUTOR)
                txn.append_event(SAMPLE_EVENT)
                raise RuntimeError("boom")

        assert store.get("distributor") is None
        assert store.get_events() == []

    def test_reads_see_staged_writes(self, store):
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
            assert txn.get("distributor")["authority"] == "ops-authority"
            # Committed state is unchanged until the scope exits
            assert store.get("distributor") is None

    def test_get_returns_copies(self, store):
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        record = store.get("distributor")
        record["authority"] = "mallory"
        assert store.get("distributor")["authority"] == "ops-authority"

    def test_list_records_by_prefix(self, store):
        with store.transaction() as txn:
            txn.put("collection:b", {"collection_id": "b"})
            txn.put("collection:a", {"collection_id": "a"})
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        records = store.list_records("collection:")
        assert [r["collection_id"] for r in records] == ["a", "b"]

    def test_event_queries(self, store):
        with store.transaction() as txn:
            for seq, collection_id in enumerate(["genesis", "other", "genesis", "genesis"], start=1):
                txn.append_event({**SAMPLE_EVENT, "sequence": seq, "collection_id": collection_id})

        genesis = store.get_events(collection_id="genesis")
        assert [e["sequence"] for e in genesis] == [1, 3, 4]

        newest = store.get_events(collection_id="genesis", limit=2, newest_first=True)
        assert [e["sequence"] for e in newest] == [4, 3]


class TestParticipants:
    """Participant coordination."""

    def test_participant_commit(self, store):
        participant = RecordingParticipant()
        with store.transaction(participants=[participant]) as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        assert participant.calls == ["begin", "commit"]

    def test_participant_rollback_on_error(self, store):
        participant = RecordingParticipant()
        with pytest.raises(ValueError):
            with store.transaction(participants=[participant]):
                raise ValueError("bad input")

        assert participant.calls == ["begin", "rollback"]

    def test_participant_rollback_when_commit_fails(self):
        """A failed store commit still rolls back every participant."""
        store = FailingWriteStorage()
        store.fail_writes = True
        first, second = RecordingParticipant(), RecordingParticipant()

        with pytest.raises(StorageWriteError):
            with store.transaction(participants=[first, second]) as txn:
                txn.put("distributor", SAMPLE_DISTRIBUTOR)

        assert first.calls == ["begin", "rollback"]
        assert second.calls == ["begin", "rollback"]
        assert store.get("distributor") is None


class TestJSONFileStorage:
    """JSON file specifics."""

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "ledger.json")
        with JSONFileStorage(path).transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
            txn.append_event(SAMPLE_EVENT)

        reopened = JSONFileStorage(path)
        assert reopened.get("distributor") == SAMPLE_DISTRIBUTOR
        assert len(reopened.get_events()) == 1

    def test_document_layout(self, tmp_path):
        path = tmp_path / "ledger.json"
        with JSONFileStorage(str(path)).transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        document = json.loads(path.read_text())
        assert document["version"] == 1
        assert document["records"]["distributor"] == SAMPLE_DISTRIBUTOR
        assert document["events"] == []
        assert document["last_updated"] is not None

    def test_failed_transaction_leaves_file_untouched(self, tmp_path):
        path = tmp_path / "ledger.json"
        store = JSONFileStorage(str(path))
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
        before = path.read_text()

        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.put("collection:genesis", {"collection_id": "genesis"})
                raise RuntimeError("abort")

        assert path.read_text() == before

    def test_no_temp_files_left_behind(self, tmp_path):
        store = JSONFileStorage(str(tmp_path / "ledger.json"))
        for seq in range(1, 4):
            with store.transaction() as txn:
                txn.append_event({**SAMPLE_EVENT, "sequence": seq})

        assert list(tmp_path.glob("*.tmp")) == []
        assert len(store.get_events()) == 3

    def test_lock_released_after_failure(self, tmp_path):
        store = JSONFileStorage(str(tmp_path / "ledger.json"))
        with pytest.raises(RuntimeError):
            with store.transaction() as txn:
                txn.put("distributor", SAMPLE_DISTRIBUTOR)
                raise RuntimeError("abort")

        # A second handle on the same file can still lock it
        with JSONFileStorage(store.file_path).transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        assert os.path.exists(store.lock_path)
        assert store.get("distributor") == SAMPLE_DISTRIBUTOR

    @pytest.mark.skipif(
        "fork" not in multiprocessing.get_all_start_methods(), reason="requires fork"
    )
    def test_concurrent_processes_do_not_lose_updates(self, tmp_path):
        """Processes sharing one file serialize their read-modify-write cycles."""
        path = str(tmp_path / "ledger.json")
        context = multiprocessing.get_context("fork")
        workers = [
            context.Process(target=_increment_counter, args=(path, 25)) for _ in range(4)
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=60)

        assert [worker.exitcode for worker in workers] == [0, 0, 0, 0]
        store = JSONFileStorage(path)
        assert store.get("counter") == {"value": 100}
        assert sorted(e["sequence"] for e in store.get_events()) == list(range(1, 101))

    def test_invalid_json_raises_read_error(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json")

        with pytest.raises(StorageReadError):
            JSONFileStorage(str(path)).get("distributor")

    def test_backup(self, tmp_path):
        store = JSONFileStorage(str(tmp_path / "ledger.json"))
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)

        backup_path = store.backup(str(tmp_path / "ledger.backup"))
        assert json.loads(open(backup_path).read())["records"]["distributor"] == SAMPLE_DISTRIBUTOR

    def test_backup_without_file(self, tmp_path):
        with pytest.raises(StorageError):
            JSONFileStorage(str(tmp_path / "missing.json")).backup()

    def test_info(self, tmp_path):
        info = JSONFileStorage(str(tmp_path / "ledger.json")).get_info()
        assert info["backend_type"] == "JSONFileStorage"
        assert info["available"] is True
        assert info["file_exists"] is False


class TestMemoryStorage:
    """Memory store specifics."""

    def test_info_counts(self):
        store = MemoryStorage()
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
            txn.append_event(SAMPLE_EVENT)

        info = store.get_info()
        assert info["record_count"] == 1
        assert info["event_count"] == 1

    def test_clear(self):
        store = MemoryStorage()
        with store.transaction() as txn:
            txn.put("distributor", SAMPLE_DISTRIBUTOR)
        store.clear()
        assert store.get("distributor") is None


class TestGetStorageBackend:
    """Backend factory."""

    def test_memory(self):
        assert isinstance(get_storage_backend("memory"), MemoryStorage)

    def test_json_with_path(self, tmp_path):
        store = get_storage_backend("json", data_file=str(tmp_path / "x.json"))
        assert isinstance(store, JSONFileStorage)
        assert store.file_path.endswith("x.json")

    def test_env_selects_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        assert isinstance(get_storage_backend(), MemoryStorage)

    def test_unknown_backend(self):
        with pytest.raises(StorageError):
            get_storage_backend("cassandra")

    def test_postgres_requires_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(StorageError):
            get_storage_backend("postgresql")
