from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ordergate.errors import StorageError
from ordergate.orders import ResolvedOrder
from ordergate.storage.migrations import run_migrations


logger = logging.getLogger("ordergate.storage")

_RECORD_KEYS = ["id", "username", "package_name", "order_id", "created_at"]


class SqliteDedupStore:
    """Relational dedup store.

    ``order_claims`` holds one row per external order id under a primary key,
    which makes ``claim`` an atomic insert-if-absent. ``orders`` keeps one row
    per processed line item, indexed on the external order id.
    """

    backend = "sqlite"

    def __init__(self, db_path: Path, busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._configure_connection(busy_timeout_ms)
            version = run_migrations(self.conn)
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"failed to open sqlite dedup store at {self.db_path}: {exc}") from exc
        logger.info("SQLite dedup store opened", extra={"path": str(self.db_path), "schema_version": version})

    def _configure_connection(self, busy_timeout_ms: int) -> None:
        self.conn.execute("PRAGMA journal_mode = WAL;")
        self.conn.execute("PRAGMA synchronous = NORMAL;")
        self.conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")

    @contextmanager
    def transaction(self):
        with self._lock:
            try:
                self.conn.execute("BEGIN")
                yield self.conn
            except Exception:
                self.conn.rollback()
                raise
            else:
                self.conn.commit()

    def exists(self, external_order_id: str) -> bool:
        key = str(external_order_id)
        try:
            with self._lock:
                row = self.conn.execute(
                    """
                    SELECT 1 FROM order_claims WHERE external_order_id = ?
                    UNION ALL
                    SELECT 1 FROM orders WHERE order_id = ?
                    LIMIT 1
                    """,
                    (key, key),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to check order {key}: {exc}") from exc
        return row is not None

    def claim(self, external_order_id: str) -> bool:
        key = str(external_order_id)
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self.transaction() as conn:
                cur = conn.execute(
                    "INSERT OR IGNORE INTO order_claims (external_order_id, claimed_at) VALUES (?, ?)",
                    (key, now),
                )
                return cur.rowcount == 1
        except sqlite3.Error as exc:
            raise StorageError(f"failed to claim order {key}: {exc}") from exc

    def insert(self, order: ResolvedOrder) -> None:
        record = order.to_record()
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT INTO orders (id, username, package_name, order_id, created_at) VALUES (?, ?, ?, ?, ?)",
                    tuple(record[key] for key in _RECORD_KEYS),
                )
                conn.execute(
                    "INSERT OR IGNORE INTO order_claims (external_order_id, claimed_at) VALUES (?, ?)",
                    (order.external_order_id, order.created_at),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"failed to add order {order.external_order_id}: {exc}") from exc

    def list_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        safe_limit = max(1, min(int(limit), 500))
        try:
            with self._lock:
                rows = self.conn.execute(
                    f"SELECT {', '.join(_RECORD_KEYS)} FROM orders ORDER BY created_at DESC LIMIT ?",
                    (safe_limit,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to list orders: {exc}") from exc
        return [dict(zip(_RECORD_KEYS, row)) for row in rows]

    def close(self) -> None:
        with self._lock:
            self.conn.close()
