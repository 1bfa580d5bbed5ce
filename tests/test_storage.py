"""
Tests for storage backends, atomic increments and transaction support
"""

import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from studio_ledger.storage import (
    InMemoryStorage, SQLiteStorage, PostgreSQLStorage, create_storage
)


# Test data
test_data = {
    "id": "test_001",
    "name": "Test Record",
    "balance": "100.50",
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


class TestStorageInterface:
    """Basic document operations on every local backend"""

    def _exercise_crud(self, storage):
        storage.save("test_table", "test_001", test_data)
        assert storage.load("test_table", "test_001") == test_data

        assert storage.exists("test_table", "test_001")
        assert not storage.exists("test_table", "non_existent")

        storage.save("test_table", "record_2", {"id": "record_2", "name": "Other"})
        assert [r["id"] for r in storage.load_all("test_table")] == ["test_001", "record_2"]

        results = storage.find("test_table", {"name": "Other"})
        assert len(results) == 1
        assert results[0]["id"] == "record_2"

        assert storage.count("test_table") == 2
        assert storage.delete("test_table", "test_001")
        assert not storage.delete("test_table", "test_001")
        assert storage.count("test_table") == 1

        storage.clear_table("test_table")
        assert storage.count("test_table") == 0

    def test_in_memory_storage_basic_operations(self):
        storage = InMemoryStorage()
        self._exercise_crud(storage)
        storage.close()

    def test_sqlite_storage_basic_operations(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "test.db")
            self._exercise_crud(storage)
            storage.close()

    def test_in_memory_load_returns_copy(self):
        storage = InMemoryStorage()
        storage.save("t", "a", {"id": "a", "balance": "1"})
        loaded = storage.load("t", "a")
        loaded["balance"] = "999"
        assert storage.load("t", "a")["balance"] == "1"

    def test_sqlite_upsert_keeps_insertion_order(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "order.db")
            storage.save("t", "a", {"id": "a", "v": 1})
            storage.save("t", "b", {"id": "b", "v": 1})
            storage.save("t", "a", {"id": "a", "v": 2})

            assert [r["id"] for r in storage.load_all("t")] == ["a", "b"]
            assert storage.load("t", "a")["v"] == 2
            storage.close()


class TestIncrement:
    """Atomic add on a Decimal field"""

    @pytest.fixture(params=["memory", "sqlite"])
    def backend(self, request):
        if request.param == "memory":
            storage = InMemoryStorage()
            yield storage
        else:
            with tempfile.TemporaryDirectory() as temp_dir:
                storage = SQLiteStorage(Path(temp_dir) / "inc.db")
                yield storage
                storage.close()

    def test_increment_adds_delta(self, backend):
        backend.save("customers", "c1", {"id": "c1", "balance": "10.00"})
        updated = backend.increment("customers", "c1", "balance", Decimal("5.25"))
        assert Decimal(updated["balance"]) == Decimal("15.25")
        assert Decimal(backend.load("customers", "c1")["balance"]) == Decimal("15.25")

    def test_increment_negative_delta(self, backend):
        backend.save("customers", "c1", {"id": "c1", "balance": "10"})
        backend.increment("customers", "c1", "balance", Decimal("-30"))
        assert Decimal(backend.load("customers", "c1")["balance"]) == Decimal("-20")

    def test_increment_missing_field_starts_at_zero(self, backend):
        backend.save("customers", "c1", {"id": "c1"})
        updated = backend.increment("customers", "c1", "balance", Decimal("7"))
        assert Decimal(updated["balance"]) == Decimal("7")

    def test_increment_unknown_record_returns_none(self, backend):
        assert backend.increment("customers", "missing", "balance", Decimal("1")) is None

    def test_increment_leaves_other_fields(self, backend):
        backend.save("customers", "c1", {"id": "c1", "balance": "0", "full_name": "A"})
        backend.increment("customers", "c1", "balance", Decimal("1"))
        assert backend.load("customers", "c1")["full_name"] == "A"

    def test_concurrent_increments_are_not_lost(self):
        storage = InMemoryStorage()
        storage.save("customers", "c1", {"id": "c1", "balance": "0"})

        def worker():
            for _ in range(100):
                storage.increment("customers", "c1", "balance", Decimal("1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert Decimal(storage.load("customers", "c1")["balance"]) == Decimal("800")


class TestSQLiteTransactions:
    """atomic() commits or rolls back everything written inside it"""

    def test_atomic_commit(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "tx.db")
            storage.save("customers", "c1", {"id": "c1", "balance": "0"})

            with storage.atomic():
                storage.increment("customers", "c1", "balance", Decimal("50"))
                storage.save("postings", "p1", {"id": "p1", "amount": "50"})

            assert Decimal(storage.load("customers", "c1")["balance"]) == Decimal("50")
            assert storage.exists("postings", "p1")
            storage.close()

    def test_atomic_rollback(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "tx.db")
            storage.save("customers", "c1", {"id": "c1", "balance": "0"})
            storage.save("postings", "seed", {"id": "seed"})

            with pytest.raises(RuntimeError):
                with storage.atomic():
                    storage.increment("customers", "c1", "balance", Decimal("50"))
                    storage.save("postings", "p1", {"id": "p1", "amount": "50"})
                    raise RuntimeError("posting write failed")

            assert Decimal(storage.load("customers", "c1")["balance"]) == Decimal("0")
            assert not storage.exists("postings", "p1")
            storage.close()

    def test_data_survives_reopen(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "persist.db"
            storage = SQLiteStorage(db_path)
            storage.save("customers", "c1", {"id": "c1", "balance": "12.50"})
            storage.close()

            reopened = SQLiteStorage(db_path)
            assert reopened.load("customers", "c1")["balance"] == "12.50"
            reopened.close()

    def test_nested_atomic_joins_outer_block(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "tx.db")
            storage.save("customers", "c1", {"id": "c1", "balance": "0"})

            with pytest.raises(RuntimeError):
                with storage.atomic():
                    with storage.atomic():
                        storage.increment("customers", "c1", "balance", Decimal("50"))
                    assert storage.atomic_depth == 1
                    raise RuntimeError("outer block failed")

            assert storage.atomic_depth == 0
            assert Decimal(storage.load("customers", "c1")["balance"]) == Decimal("0")
            storage.close()

    def test_table_created_in_rolled_back_block_is_recreated(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = SQLiteStorage(Path(temp_dir) / "tx.db")

            with pytest.raises(RuntimeError):
                with storage.atomic():
                    storage.save("postings", "p1", {"id": "p1"})
                    raise RuntimeError("posting write failed")

            storage.save("postings", "p2", {"id": "p2"})
            assert [r["id"] for r in storage.load_all("postings")] == ["p2"]
            storage.close()


class TestSQLiteConcurrentWriters:
    """Two connections to one database file never lose a balance update"""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        db_path = Path(self.temp_dir.name) / "shared.db"
        self.first = SQLiteStorage(db_path)
        self.second = SQLiteStorage(db_path)
        self.first.save("customers", "c1", {"id": "c1", "balance": "0"})
        # warm up the second connection's table cache
        assert self.second.load("customers", "c1") is not None

    def teardown_method(self):
        self.first.close()
        self.second.close()
        self.temp_dir.cleanup()

    def balance(self):
        return Decimal(self.first.load("customers", "c1")["balance"])

    def test_increment_inside_atomic_holds_write_lock(self):
        started = threading.Event()

        def other_writer():
            started.set()
            self.second.increment("customers", "c1", "balance", Decimal("100"))

        worker = threading.Thread(target=other_writer)
        with self.first.atomic():
            self.first.increment("customers", "c1", "balance", Decimal("50"))
            worker.start()
            started.wait(timeout=5)
            time.sleep(0.2)
            # the other connection is still waiting for the lock
            assert self.balance() == Decimal("50")
        worker.join(timeout=10)

        assert not worker.is_alive()
        assert self.balance() == Decimal("150")

    def test_interleaved_atomic_increments_are_not_lost(self):
        def worker(storage):
            for _ in range(25):
                with storage.atomic():
                    storage.increment("customers", "c1", "balance", Decimal("1"))

        threads = [threading.Thread(target=worker, args=(s,)) for s in (self.first, self.second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert self.balance() == Decimal("50")


class TestCreateStorage:

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = create_storage(f"sqlite:///{temp_dir}/ledger.db")
            assert isinstance(storage, SQLiteStorage)
            storage.close()

    def test_sqlite_memory_url(self):
        storage = create_storage("sqlite:///:memory:")
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_url(self):
        with pytest.raises(ValueError, match="Unsupported database URL"):
            create_storage("mongodb://localhost/studio")


@pytest.mark.skipif(
    not os.environ.get("STUDIO_TEST_POSTGRES_URL"),
    reason="Set STUDIO_TEST_POSTGRES_URL to run PostgreSQL tests"
)
class TestPostgreSQLStorage:

    def test_increment_and_find(self):
        storage = PostgreSQLStorage(os.environ["STUDIO_TEST_POSTGRES_URL"])
        try:
            storage.clear_table("test_customers")
            storage.save("test_customers", "c1", {"id": "c1", "balance": "1.50", "status": "vip"})
            updated = storage.increment("test_customers", "c1", "balance", Decimal("2.25"))
            assert Decimal(updated["balance"]) == Decimal("3.75")
            assert [r["id"] for r in storage.find("test_customers", {"status": "vip"})] == ["c1"]
        finally:
            storage.clear_table("test_customers")
            storage.close()
