from ordergate.storage.base import DedupStore
from ordergate.storage.factory import open_dedup_store
from ordergate.storage.file_store import FileDedupStore
from ordergate.storage.sqlite_store import SqliteDedupStore

__all__ = ["DedupStore", "FileDedupStore", "SqliteDedupStore", "open_dedup_store"]
