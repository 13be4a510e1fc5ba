from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger("ordergate.persistence")


def _sibling(path: Path, suffix: str) -> Path:
    return path.with_name(f"{path.name}{suffix}")


def atomic_write_json(path: Path, data: Any) -> None:
    """Serialize ``data`` to a sibling temp file, fsync it, then rename it over ``path``."""
    encoded = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    staging = _sibling(path, ".tmp")
    try:
        with staging.open("w", encoding="utf-8") as handle:
            handle.write(encoded)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staging, path)
    except OSError:
        staging.unlink(missing_ok=True)
        raise


def read_json_object(path: Path) -> dict[str, Any]:
    """
    Load a JSON object document from ``path``.

    A missing file reads as an empty object. A file that cannot be decoded, or
    whose top level is not an object, is moved aside as ``*.corrupt`` and also
    reads as empty so the caller can start over without losing the evidence.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        quarantine_corrupt_file(path, exc)
        return {}

    try:
        loaded = json.loads(text)
    except json.JSONDecodeError as exc:
        quarantine_corrupt_file(path, exc)
        return {}
    if isinstance(loaded, dict):
        return loaded
    quarantine_corrupt_file(path, ValueError(f"top level is {type(loaded).__name__}, not an object"))
    return {}


def quarantine_corrupt_file(path: Path, reason: Exception) -> Path | None:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
    target = _sibling(path, f".{stamp}.corrupt")
    try:
        path.rename(target)
    except OSError as exc:
        logger.warning("Could not set aside unreadable %s (%s): %s", path, reason, exc)
        return None
    logger.warning("Unreadable %s set aside as %s: %s", path, target.name, reason)
    return target
