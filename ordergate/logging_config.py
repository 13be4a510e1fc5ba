"""JSON-lines logging with per-batch and per-order correlation ids."""

from __future__ import annotations

import contextvars
import json
import logging
import os
from datetime import datetime, timezone


_batch_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("batch_id", default="")
_order_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("order_id", default="")

# Attributes every LogRecord carries; anything else on a record came from ``extra=``.
_STANDARD_RECORD_ATTRS = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}


def set_batch_id(batch_id: str) -> None:
    _batch_id_ctx.set(str(batch_id or ""))


def set_order_id(order_id: str) -> None:
    _order_id_ctx.set(str(order_id or ""))


def clear_order_id() -> None:
    _order_id_ctx.set("")


class JsonLogFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "batch_id": getattr(record, "batch_id", "") or _batch_id_ctx.get(),
            "order_id": getattr(record, "order_id", "") or _order_id_ctx.get(),
        }
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_ATTRS and key not in payload
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level() -> int:
    if os.getenv("ORDERGATE_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}:
        return logging.DEBUG
    level = logging.getLevelName(os.getenv("ORDERGATE_LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLogFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(_resolve_level())
