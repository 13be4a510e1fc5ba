from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ordergate.errors import ConfigurationError


_DEFAULT_DATA_DIR = "./.ordergate_data"
_TRUE_VALUES = {"1", "true", "yes", "on"}

STORAGE_BACKENDS = {"file", "sqlite"}
ACTION_SINKS = {"log", "http"}

DEFAULT_NOTIFICATION_MESSAGE = "&a%player% &7bought &6%package% &7(order &e%order_id%&7)"


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or "").strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, default)).strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, default)).strip())
    except ValueError:
        return default


def data_dir() -> Path:
    return Path(os.getenv("ORDERGATE_DATA_DIR", _DEFAULT_DATA_DIR))


@dataclass
class Settings:
    data_dir: Path
    products_path: Path
    storage_backend: str
    db_path: Path
    orders_path: Path
    dedup_fail_open: bool
    recency_days: int

    shopify_domain: str
    shopify_token: str
    shopify_api_version: str
    poll_interval_seconds: float
    days_to_check: int
    max_orders: int

    action_sink: str
    action_sink_url: str
    action_timeout_seconds: int
    action_sink_token: str

    notifications_enabled: bool
    notification_message: str
    notification_webhook_url: str

    debug: bool = False

    def has_shopify_credentials(self) -> bool:
        return bool(self.shopify_domain and self.shopify_token)

    def validate(self) -> None:
        """
        Validate the combination of configured values.

        Raises:
            ConfigurationError: If a backend, sink or required URL is invalid.
        """
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"ORDERGATE_STORAGE_BACKEND must be one of {sorted(STORAGE_BACKENDS)}, got '{self.storage_backend}'"
            )
        if self.action_sink not in ACTION_SINKS:
            raise ConfigurationError(
                f"ORDERGATE_ACTION_SINK must be one of {sorted(ACTION_SINKS)}, got '{self.action_sink}'"
            )
        if self.action_sink == "http" and not self.action_sink_url:
            raise ConfigurationError("ORDERGATE_ACTION_SINK_URL is required when ORDERGATE_ACTION_SINK=http")
        if self.recency_days < 1:
            raise ConfigurationError("ORDERGATE_RECENCY_DAYS must be at least 1")


def load_settings() -> Settings:
    root = data_dir()
    return Settings(
        data_dir=root,
        products_path=Path(_env_str("ORDERGATE_PRODUCTS_PATH") or root / "products.json"),
        storage_backend=_env_str("ORDERGATE_STORAGE_BACKEND", "file").lower(),
        db_path=Path(_env_str("ORDERGATE_DB_PATH") or root / "orders.sqlite"),
        orders_path=Path(_env_str("ORDERGATE_ORDERS_PATH") or root / "orders.json"),
        dedup_fail_open=_env_bool("ORDERGATE_DEDUP_FAIL_OPEN", True),
        recency_days=_env_int("ORDERGATE_RECENCY_DAYS", 30),
        shopify_domain=_env_str("SHOPIFY_DOMAIN"),
        shopify_token=_env_str("SHOPIFY_TOKEN"),
        shopify_api_version=_env_str("SHOPIFY_API_VERSION", "2023-10") or "2023-10",
        poll_interval_seconds=max(_env_float("SHOPIFY_POLL_INTERVAL_SECONDS", 60.0), 1.0),
        days_to_check=max(_env_int("SHOPIFY_DAYS_TO_CHECK", 1), 1),
        max_orders=max(_env_int("SHOPIFY_MAX_ORDERS", 50), 1),
        action_sink=_env_str("ORDERGATE_ACTION_SINK", "log").lower(),
        action_sink_url=_env_str("ORDERGATE_ACTION_SINK_URL"),
        action_timeout_seconds=max(_env_int("ORDERGATE_ACTION_TIMEOUT_SECONDS", 5), 1),
        action_sink_token=_env_str("ORDERGATE_ACTION_SINK_TOKEN"),
        notifications_enabled=_env_bool("ORDERGATE_NOTIFICATIONS_ENABLED", True),
        notification_message=os.getenv("ORDERGATE_NOTIFICATION_MESSAGE") or DEFAULT_NOTIFICATION_MESSAGE,
        notification_webhook_url=_env_str("ORDERGATE_NOTIFICATION_WEBHOOK_URL"),
        debug=_env_bool("ORDERGATE_DEBUG", False),
    )
