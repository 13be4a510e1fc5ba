import logging
import threading

from ordergate.errors import ShopifyAPIError
from ordergate.ingestor import IngestSummary, OrderIngestor
from ordergate.integrations.shopify_client import ShopifyClient


logger = logging.getLogger("ordergate.scheduler")


class OrderPollingScheduler:
    """Fetches order batches on a background thread and hands them to the ingestor."""

    def __init__(
        self,
        client: ShopifyClient,
        ingestor: OrderIngestor,
        interval_seconds: float = 60.0,
        days_to_check: int = 1,
        max_orders: int = 50,
    ):
        self._client = client
        self._ingestor = ingestor
        self.interval_seconds = max(float(interval_seconds), 1.0)
        self.days_to_check = days_to_check
        self.max_orders = max_orders

        self._stop_event = threading.Event()
        self._thread = None
        self._last_summary = None

    @property
    def last_summary(self) -> IngestSummary | None:
        return self._last_summary

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self):
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="ordergate-poller", daemon=True)
        self._thread.start()
        logger.info("Order polling started", extra={"interval_seconds": self.interval_seconds})

    def stop(self):
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)

    def tick(self) -> IngestSummary | None:
        if not self._client.has_credentials():
            logger.warning("Shopify domain or token not configured properly")
            return None

        try:
            response = self._client.fetch_orders(days_to_check=self.days_to_check, max_orders=self.max_orders)
        except ShopifyAPIError as exc:
            logger.error("Failed to fetch orders: %s", exc, extra={"event_type": "fetch_failed"})
            return None

        summary = self._ingestor.ingest_response(response)
        self._last_summary = summary
        return summary

    def _run_loop(self):
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Order polling tick failed")
            self._stop_event.wait(timeout=self.interval_seconds)
