from __future__ import annotations

from datetime import timedelta
import logging

from ordergate.config import Settings, load_settings
from ordergate.executors.action_executor import ActionExecutor, build_action_sink
from ordergate.ingestor import OrderIngestor
from ordergate.integrations.shopify_client import ShopifyClient
from ordergate.notifications import build_notifier
from ordergate.products import ProductCatalog, ProductResolver
from ordergate.scheduler import OrderPollingScheduler
from ordergate.storage.factory import open_dedup_store


logger = logging.getLogger("ordergate.app")


class OrdergateApp:
    def __init__(self, settings: Settings | None = None):
        self.settings = settings or load_settings()
        self.settings.validate()
        self.settings.data_dir.mkdir(parents=True, exist_ok=True)

        self.store = open_dedup_store(self.settings)
        self.catalog = ProductCatalog(self.settings.products_path)
        self.resolver = ProductResolver(self.catalog)
        self.executor = ActionExecutor(build_action_sink(self.settings))
        self.notifier = build_notifier(self.settings)
        self.ingestor = OrderIngestor(
            store=self.store,
            resolver=self.resolver,
            executor=self.executor,
            notifier=self.notifier,
            dedup_fail_open=self.settings.dedup_fail_open,
            recency_window=timedelta(days=self.settings.recency_days),
        )
        self.shopify_client = ShopifyClient(
            domain=self.settings.shopify_domain,
            token=self.settings.shopify_token,
            api_version=self.settings.shopify_api_version,
        )
        self.scheduler = OrderPollingScheduler(
            client=self.shopify_client,
            ingestor=self.ingestor,
            interval_seconds=self.settings.poll_interval_seconds,
            days_to_check=self.settings.days_to_check,
            max_orders=self.settings.max_orders,
        )
        logger.info(
            "Ordergate initialized",
            extra={
                "storage_backend": self.store.backend,
                "action_sink": self.executor.sink.name,
                "products_path": str(self.settings.products_path),
                "debug": self.settings.debug,
            },
        )

    def reload_products(self) -> None:
        self.resolver.reload()

    def start(self) -> None:
        if not self.settings.has_shopify_credentials():
            logger.warning("Shopify domain or token not configured properly; polling will idle until configured")
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.store.close()
