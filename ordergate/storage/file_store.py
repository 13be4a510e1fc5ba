from __future__ import annotations

from datetime import datetime, timezone
import logging
import threading
from pathlib import Path
from typing import Any

from ordergate.errors import StorageError
from ordergate.orders import ResolvedOrder
from ordergate.persistence.json_io import atomic_write_json, read_json_object


logger = logging.getLogger("ordergate.storage")


class FileDedupStore:
    """Dedup store kept in a single JSON document.

    ``{"claims": {order_id: claimed_at}, "orders": {record_id: record}}``
    """

    backend = "file"

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create storage directory for {self._path}: {exc}") from exc

        document = read_json_object(self._path)
        claims = document.get("claims")
        orders = document.get("orders")
        self._claims: dict[str, str] = {str(k): str(v) for k, v in claims.items()} if isinstance(claims, dict) else {}
        self._orders: dict[str, dict[str, Any]] = (
            {str(k): dict(v) for k, v in orders.items() if isinstance(v, dict)} if isinstance(orders, dict) else {}
        )
        self._order_ids: set[str] = {
            str(record.get("order_id")) for record in self._orders.values() if record.get("order_id")
        }
        logger.info(
            "File dedup store opened",
            extra={"path": str(self._path), "claims": len(self._claims), "records": len(self._orders)},
        )

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _save(self) -> None:
        try:
            atomic_write_json(self._path, {"claims": self._claims, "orders": self._orders})
        except OSError as exc:
            raise StorageError(f"failed to write {self._path}: {exc}") from exc

    def exists(self, external_order_id: str) -> bool:
        key = str(external_order_id)
        with self._lock:
            return key in self._claims or key in self._order_ids

    def claim(self, external_order_id: str) -> bool:
        key = str(external_order_id)
        with self._lock:
            if key in self._claims or key in self._order_ids:
                return False
            self._claims[key] = self._now()
            try:
                self._save()
            except StorageError:
                self._claims.pop(key, None)
                raise
            return True

    def insert(self, order: ResolvedOrder) -> None:
        record = order.to_record()
        with self._lock:
            self._orders[order.id] = record
            self._order_ids.add(order.external_order_id)
            self._claims.setdefault(order.external_order_id, order.created_at)
            self._save()

    def list_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        safe_limit = max(1, min(int(limit), 500))
        with self._lock:
            records = sorted(self._orders.values(), key=lambda item: str(item.get("created_at") or ""), reverse=True)
        return [dict(record) for record in records[:safe_limit]]

    def close(self) -> None:
        return None
