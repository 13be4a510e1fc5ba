import sqlite3
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from ordergate.config import load_settings
from ordergate.errors import ConfigurationError, StorageError
from ordergate.orders import ResolvedOrder
from ordergate.storage import FileDedupStore, SqliteDedupStore, open_dedup_store
from ordergate.storage.migrations import MIGRATIONS, get_current_version


class DedupStoreContract:
    """Behaviour shared by every dedup backend; mixed into a TestCase below."""

    def open_store(self, root: Path):
        raise NotImplementedError

    def test_unknown_order_does_not_exist(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = self.open_store(Path(tmp_dir))
            try:
                self.assertFalse(store.exists("1001"))
            finally:
                store.close()

    def test_claim_is_insert_if_absent(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = self.open_store(Path(tmp_dir))
            try:
                self.assertTrue(store.claim("1001"))
                self.assertFalse(store.claim("1001"))
                self.assertTrue(store.exists("1001"))
            finally:
                store.close()

    def test_insert_marks_order_as_existing_and_blocks_claim(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = self.open_store(Path(tmp_dir))
            try:
                store.insert(ResolvedOrder(account_identity="Steve", item_name="VIP", external_order_id="1002"))
                store.insert(ResolvedOrder(account_identity="Steve", item_name="Kit", external_order_id="1002"))

                self.assertTrue(store.exists("1002"))
                self.assertFalse(store.claim("1002"))
                recent = store.list_recent()
                self.assertEqual(len(recent), 2)
                self.assertEqual({record["package_name"] for record in recent}, {"VIP", "Kit"})
                self.assertEqual(recent[0]["username"], "Steve")
            finally:
                store.close()

    def test_records_survive_reopen(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            root = Path(tmp_dir)
            store = self.open_store(root)
            store.claim("2001")
            store.insert(ResolvedOrder(account_identity="Alex", item_name="VIP", external_order_id="2002"))
            store.close()

            reopened = self.open_store(root)
            try:
                self.assertTrue(reopened.exists("2001"))
                self.assertTrue(reopened.exists("2002"))
                self.assertEqual(reopened.list_recent()[0]["order_id"], "2002")
            finally:
                reopened.close()

    def test_concurrent_claims_have_a_single_winner(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = self.open_store(Path(tmp_dir))
            results = []
            lock = threading.Lock()

            def _claim():
                won = store.claim("3001")
                with lock:
                    results.append(won)

            threads = [threading.Thread(target=_claim) for _ in range(8)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
            store.close()

            self.assertEqual(results.count(True), 1)
            self.assertEqual(len(results), 8)


class FileDedupStoreTest(DedupStoreContract, unittest.TestCase):
    def open_store(self, root: Path):
        return FileDedupStore(root / "orders.json")

    def test_failed_write_rolls_back_claim(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = FileDedupStore(Path(tmp_dir) / "orders.json")

            with patch("ordergate.storage.file_store.atomic_write_json", side_effect=OSError("disk full")):
                with self.assertRaises(StorageError):
                    store.claim("4001")

            self.assertFalse(store.exists("4001"))


class SqliteDedupStoreTest(DedupStoreContract, unittest.TestCase):
    def open_store(self, root: Path):
        return SqliteDedupStore(root / "orders.sqlite")

    def test_migrations_are_recorded(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = SqliteDedupStore(Path(tmp_dir) / "orders.sqlite")
            try:
                self.assertEqual(get_current_version(store.conn), MIGRATIONS[-1][0])
            finally:
                store.close()

    def test_claims_backfilled_from_existing_orders(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            db_path = Path(tmp_dir) / "orders.sqlite"
            conn = sqlite3.connect(db_path)
            conn.execute(
                "CREATE TABLE orders (id TEXT PRIMARY KEY, username TEXT NOT NULL, package_name TEXT NOT NULL, "
                "order_id TEXT NOT NULL, created_at TEXT NOT NULL)"
            )
            conn.execute(
                "INSERT INTO orders VALUES ('r1', 'Steve', 'VIP', '5001', '2024-01-01T00:00:00+00:00')"
            )
            conn.commit()
            conn.close()

            store = SqliteDedupStore(db_path)
            try:
                self.assertTrue(store.exists("5001"))
                self.assertFalse(store.claim("5001"))
            finally:
                store.close()

    def test_query_on_closed_connection_raises_storage_error(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = SqliteDedupStore(Path(tmp_dir) / "orders.sqlite")
            store.close()

            with self.assertRaises(StorageError):
                store.exists("6001")


class OpenDedupStoreTest(unittest.TestCase):
    def _settings(self, tmp_dir: str, backend: str):
        with patch.dict(
            "os.environ",
            {"ORDERGATE_DATA_DIR": tmp_dir, "ORDERGATE_STORAGE_BACKEND": backend},
            clear=False,
        ):
            return load_settings()

    def test_file_backend(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = open_dedup_store(self._settings(tmp_dir, "file"))

            self.assertEqual(store.backend, "file")

    def test_sqlite_backend(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            store = open_dedup_store(self._settings(tmp_dir, "sqlite"))
            try:
                self.assertEqual(store.backend, "sqlite")
            finally:
                store.close()

    def test_sqlite_failure_falls_back_to_file_store(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            settings = self._settings(tmp_dir, "sqlite")

            with patch("ordergate.storage.factory.SqliteDedupStore", side_effect=StorageError("locked")):
                with self.assertLogs("ordergate.storage", level="WARNING") as logs:
                    store = open_dedup_store(settings)

            self.assertEqual(store.backend, "file")
            self.assertTrue(any("Falling back to file storage" in line for line in logs.output))

    def test_unknown_backend_raises(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            settings = self._settings(tmp_dir, "file")
            settings.storage_backend = "mysql"

            with self.assertRaises(ConfigurationError):
                open_dedup_store(settings)


if __name__ == "__main__":
    unittest.main()
