from __future__ import annotations

from typing import Any, Protocol

from ordergate.orders import ResolvedOrder


class DedupStore(Protocol):
    """Durable record of which storefront orders already triggered actions.

    ``exists`` is true once an order has been claimed or has at least one
    recorded item. ``claim`` is the atomic insert-if-absent that decides which
    ingestion pass gets to run an order's actions.
    """

    backend: str

    def exists(self, external_order_id: str) -> bool:
        ...

    def claim(self, external_order_id: str) -> bool:
        ...

    def insert(self, order: ResolvedOrder) -> None:
        ...

    def list_recent(self, limit: int = 50) -> list[dict[str, Any]]:
        ...

    def close(self) -> None:
        ...
