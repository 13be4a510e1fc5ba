from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List

from ordergate.errors import NotFoundError
from ordergate.persistence.json_io import atomic_write_json, read_json_object


ProductMapping = Dict[str, List[str]]

logger = logging.getLogger("ordergate.products")


class ProductCatalog:
    """Product name to action templates mapping, persisted as a JSON document.

    Layout on disk::

        {"packages": {"VIP Rank": {"commands": ["lp user %player% parent set vip"]}}}
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._lock = threading.Lock()
        self._document: dict[str, Any] = {}
        self.reload()

    @property
    def path(self) -> Path:
        return self._path

    def reload(self) -> None:
        document = read_json_object(self._path)
        packages = document.get("packages")
        if not isinstance(packages, dict):
            if packages is not None:
                logger.warning("Product catalog 'packages' is not an object, ignoring it", extra={"path": str(self._path)})
            document["packages"] = {}
        with self._lock:
            self._document = document
        logger.info("Product catalog loaded", extra={"path": str(self._path), "products": len(document["packages"])})

    def _packages(self) -> dict[str, Any]:
        return self._document.setdefault("packages", {})

    @staticmethod
    def _commands_of(entry: Any) -> list[str]:
        if not isinstance(entry, dict):
            return []
        commands = entry.get("commands")
        if not isinstance(commands, list):
            return []
        return [str(command) for command in commands if isinstance(command, str) and command.strip()]

    def _save(self) -> None:
        atomic_write_json(self._path, self._document)

    def get(self, name: str) -> list[str] | None:
        with self._lock:
            packages = self._packages()
            if name not in packages:
                return None
            return self._commands_of(packages[name])

    def list_products(self) -> ProductMapping:
        with self._lock:
            return {name: self._commands_of(entry) for name, entry in self._packages().items()}

    def add_command(self, name: str, template: str) -> list[str]:
        product = str(name or "").strip()
        command = str(template or "").strip()
        if not product:
            raise ValueError("product name must not be empty")
        if not command:
            raise ValueError("command must not be empty")
        with self._lock:
            packages = self._packages()
            entry = packages.get(product)
            if not isinstance(entry, dict):
                entry = {"commands": []}
                packages[product] = entry
            commands = self._commands_of(entry)
            commands.append(command)
            entry["commands"] = commands
            self._save()
            return list(commands)

    def remove_command(self, name: str, index: int) -> str:
        """Remove the 1-based ``index`` command of ``name`` and return it."""
        with self._lock:
            packages = self._packages()
            if name not in packages:
                raise NotFoundError(f"product not found: {name}")
            commands = self._commands_of(packages[name])
            if index < 1 or index > len(commands):
                raise NotFoundError(f"product {name} has no command #{index}")
            removed = commands.pop(index - 1)
            entry = packages[name] if isinstance(packages[name], dict) else {}
            entry["commands"] = commands
            packages[name] = entry
            self._save()
            return removed

    def delete_product(self, name: str) -> list[str]:
        with self._lock:
            packages = self._packages()
            if name not in packages:
                raise NotFoundError(f"product not found: {name}")
            removed = self._commands_of(packages.pop(name))
            self._save()
            return removed

    def render_snippet(self, name: str) -> str:
        commands = self.get(name)
        if commands is None:
            commands = ["say %player% bought " + name]
        return json.dumps({name: {"commands": commands}}, ensure_ascii=False, indent=2)


class ProductResolver:
    """Cached product lookups for the ingestion pass.

    One re-entrant lock covers the cache and the reload. The cache is cleared
    only after the catalog has been re-read.
    """

    def __init__(self, catalog: ProductCatalog):
        self._catalog = catalog
        self._cache: ProductMapping = {}
        self._lock = threading.RLock()

    @property
    def catalog(self) -> ProductCatalog:
        return self._catalog

    def resolve(self, name: str) -> list[str] | None:
        with self._lock:
            cached = self._cache.get(name)
            if cached is not None:
                return list(cached)

            commands = self._catalog.get(name)
            if commands is None:
                return None
            if not commands:
                logger.warning("Product has no commands configured", extra={"product": name})
                return None

            self._cache[name] = list(commands)
            return list(commands)

    def lookup(self, name: str) -> list[str] | None:
        return self._catalog.get(name)

    def is_cached(self, name: str) -> bool:
        with self._lock:
            return name in self._cache

    def reload(self) -> None:
        with self._lock:
            self._catalog.reload()
            self._cache.clear()
        logger.info("Product resolver cache cleared")
