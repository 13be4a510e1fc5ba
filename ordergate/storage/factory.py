from __future__ import annotations

import logging

from ordergate.config import Settings
from ordergate.errors import ConfigurationError
from ordergate.storage.base import DedupStore
from ordergate.storage.file_store import FileDedupStore
from ordergate.storage.sqlite_store import SqliteDedupStore


logger = logging.getLogger("ordergate.storage")


def open_dedup_store(settings: Settings) -> DedupStore:
    """
    Open the configured dedup store.

    A relational store that fails to initialize is replaced by the file store
    so ingestion keeps a durable existence check.

    Raises:
        ConfigurationError: If the configured backend is unknown.
    """
    backend = settings.storage_backend
    if backend == "file":
        return FileDedupStore(settings.orders_path)
    if backend != "sqlite":
        raise ConfigurationError(f"unknown storage backend: {backend}")

    try:
        return SqliteDedupStore(settings.db_path)
    except Exception:
        logger.exception(
            "Failed to open relational dedup store",
            extra={"event_type": "storage_init_failed", "path": str(settings.db_path)},
        )
        logger.warning(
            "Falling back to file storage",
            extra={"event_type": "storage_fallback", "path": str(settings.orders_path)},
        )
        return FileDedupStore(settings.orders_path)
