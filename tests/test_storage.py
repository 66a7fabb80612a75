"""
Tests for storage backends and transaction support
"""

import pytest

from hsa_ledger.storage import InMemoryStorage, SQLiteStorage


test_record = {
    "id": "rec_001",
    "account_id": "ACC001",
    "amount": "100.50",
    "sequence": 0
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """Behavior shared by every backend"""

    def test_basic_operations(self, storage):
        """Test save, load, exists, count and clear"""
        storage.save("records", "rec_001", test_record)

        assert storage.load("records", "rec_001") == test_record
        assert storage.load("records", "missing") is None
        assert storage.exists("records", "rec_001")
        assert not storage.exists("records", "missing")
        assert storage.count("records") == 1

        storage.clear_table("records")
        assert storage.count("records") == 0

    def test_save_replaces_record(self, storage):
        """Test that saving an existing id replaces it in place"""
        storage.save("records", "a", {"id": "a", "value": 1})
        storage.save("records", "b", {"id": "b", "value": 2})
        storage.save("records", "a", {"id": "a", "value": 3})

        assert storage.count("records") == 2
        assert [r["value"] for r in storage.load_all("records")] == [3, 2]

    def test_find_preserves_insertion_order(self, storage):
        """Test filtering and ordering of find"""
        for i in range(5):
            storage.save("records", f"rec_{i}", {
                "id": f"rec_{i}",
                "account_id": "ACC001" if i % 2 == 0 else "ACC002",
                "sequence": i
            })

        found = storage.find("records", {"account_id": "ACC001"})
        assert [r["sequence"] for r in found] == [0, 2, 4]
        assert storage.find("records", {"account_id": "ACC003"}) == []
        assert len(storage.find("records", {})) == 5

    def test_returned_records_are_copies(self, storage):
        """Test that mutating a loaded record does not touch the store"""
        storage.save("records", "rec_001", test_record)
        loaded = storage.load("records", "rec_001")
        loaded["amount"] = "999.99"

        assert storage.load("records", "rec_001")["amount"] == "100.50"

    def test_atomic_commit(self, storage):
        """Test that writes in an atomic block are kept"""
        with storage.atomic():
            storage.save("records", "a", {"id": "a"})
            storage.save("records", "b", {"id": "b"})

        assert storage.count("records") == 2

    def test_atomic_rollback(self, storage):
        """Test that an exception discards every write of the block"""
        storage.save("records", "existing", {"id": "existing", "value": 1})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("records", "existing", {"id": "existing", "value": 2})
                storage.save("records", "new", {"id": "new"})
                raise RuntimeError("boom")

        assert storage.load("records", "existing") == {"id": "existing", "value": 1}
        assert not storage.exists("records", "new")

    def test_nested_atomic(self, storage):
        """Test that a nested block commits with the outer one"""
        with storage.atomic():
            storage.save("records", "outer", {"id": "outer"})
            with storage.atomic():
                storage.save("records", "inner", {"id": "inner"})

        assert storage.exists("records", "outer")
        assert storage.exists("records", "inner")


    def test_rollback_restores_cleared_table(self, storage):
        """Test that clearing a table inside a failed block is undone"""
        storage.save("records", "a", {"id": "a"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.clear_table("records")
                storage.save("records", "b", {"id": "b"})
                raise RuntimeError("boom")

        assert storage.exists("records", "a")
        assert not storage.exists("records", "b")


class TestInMemoryStorage:
    """In-memory transaction bookkeeping"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        for i in range(1000):
            self.storage.save("records", f"rec_{i}", {"id": f"rec_{i}", "sequence": i})

    def test_transaction_tracks_only_written_keys(self):
        """Test that a block records one undo entry per write, whatever the store size"""
        untouched = self.storage._data["records"]["rec_500"]

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("records", "rec_1", {"id": "rec_1", "sequence": -1})
                self.storage.save("records", "rec_new", {"id": "rec_new"})
                assert len(self.storage._undo_log) == 2
                raise RuntimeError("boom")

        assert self.storage.load("records", "rec_1") == {"id": "rec_1", "sequence": 1}
        assert not self.storage.exists("records", "rec_new")
        assert self.storage._data["records"]["rec_500"] is untouched
        assert self.storage.count("records") == 1000

    def test_commit_discards_undo_log(self):
        """Test that committed blocks leave nothing to undo"""
        with self.storage.atomic():
            self.storage.save("records", "rec_1", {"id": "rec_1", "sequence": -1})

        assert self.storage._undo_log == []
        self.storage.save("records", "rec_2", {"id": "rec_2"})
        assert self.storage._undo_log == []

class TestSQLiteStorage:
    """SQLite-specific behavior"""

    def test_persistence_across_connections(self, tmp_path):
        """Test that data survives closing and reopening the database"""
        db_path = tmp_path / "persist.db"

        storage = SQLiteStorage(db_path)
        storage.save("records", "rec_001", test_record)
        storage.close()

        reopened = SQLiteStorage(db_path)
        assert reopened.load("records", "rec_001") == test_record
        reopened.close()

    def test_rollback_not_persisted(self, tmp_path):
        """Test that rolled-back writes never reach disk"""
        db_path = tmp_path / "rollback.db"
        storage = SQLiteStorage(db_path)
        storage.save("records", "kept", {"id": "kept"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("records", "dropped", {"id": "dropped"})
                raise RuntimeError("boom")
        storage.close()

        reopened = SQLiteStorage(db_path)
        assert reopened.exists("records", "kept")
        assert not reopened.exists("records", "dropped")
        reopened.close()
