from __future__ import annotations

from datetime import datetime, timezone
import sqlite3
from typing import Callable


def _create_orders(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            username TEXT NOT NULL,
            package_name TEXT NOT NULL,
            order_id TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_order_id ON orders(order_id)")


def _create_order_claims(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS order_claims (
            external_order_id TEXT PRIMARY KEY,
            claimed_at TEXT NOT NULL
        )
        """
    )
    # Orders recorded before claims existed count as claimed.
    conn.execute(
        """
        INSERT OR IGNORE INTO order_claims (external_order_id, claimed_at)
        SELECT order_id, MIN(created_at) FROM orders GROUP BY order_id
        """
    )


def _index_orders_created_at(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at)")


MIGRATIONS: list[tuple[int, Callable[[sqlite3.Connection], None]]] = [
    (1, _create_orders),
    (2, _create_order_claims),
    (3, _index_orders_created_at),
]


def get_current_version(conn: sqlite3.Connection) -> int:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    if row is None or row[0] is None:
        return 0
    return int(row[0])


def run_migrations(conn: sqlite3.Connection) -> int:
    current_version = get_current_version(conn)
    for version, upgrade_fn in MIGRATIONS:
        if version <= current_version:
            continue
        upgrade_fn(conn)
        conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, datetime.now(timezone.utc).isoformat()),
        )
        conn.commit()
        current_version = version
    return current_version
