"""Shopify Admin API client for order batches.

Only the fetch is handled here; interpreting the orders is the ingestor's job.
"""

from __future__ import annotations

from datetime import date, timedelta
import logging
from typing import Any, Callable

import requests

from ordergate.errors import ShopifyAPIError


logger = logging.getLogger("ordergate.shopify")


class ShopifyClient:
    def __init__(
        self,
        domain: str,
        token: str,
        api_version: str = "2023-10",
        timeout_seconds: int = 10,
        today_fn: Callable[[], date] | None = None,
    ) -> None:
        self._domain = str(domain or "").strip().rstrip("/")
        self._token = str(token or "").strip()
        self._api_version = api_version
        self._timeout_seconds = timeout_seconds
        self._today_fn = today_fn or date.today

    def has_credentials(self) -> bool:
        return bool(self._domain and self._token)

    def orders_url(self) -> str:
        host = self._domain.removeprefix("https://").removeprefix("http://")
        return f"https://{host}/admin/api/{self._api_version}/orders.json"

    def created_at_min(self, days_to_check: int) -> str:
        window = max(int(days_to_check), 1)
        return (self._today_fn() - timedelta(days=window - 1)).isoformat()

    def fetch_orders(self, days_to_check: int = 1, max_orders: int = 50) -> dict[str, Any]:
        """
        Fetch recent orders of any status.

        Returns:
            The decoded response object, ``{"orders": [...]}`` on success.

        Raises:
            ShopifyAPIError: On missing credentials, transport failure, a
                non-200 status or a body that is not a JSON object.
        """
        if not self.has_credentials():
            raise ShopifyAPIError("Missing Shopify credentials. Set SHOPIFY_DOMAIN and SHOPIFY_TOKEN.")

        params = {
            "status": "any",
            "created_at_min": self.created_at_min(days_to_check),
            "limit": max(int(max_orders), 1),
        }
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self._token,
        }
        url = self.orders_url()
        logger.debug("Fetching orders", extra={"url": url, "params": params})

        try:
            response = requests.get(url, params=params, headers=headers, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise ShopifyAPIError(f"Failed to fetch orders from Shopify: {exc}") from exc

        if response.status_code != 200:
            raise ShopifyAPIError(f"Shopify API returned status code {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ShopifyAPIError("Shopify API returned a body that is not JSON") from exc

        if not isinstance(payload, dict):
            raise ShopifyAPIError("Shopify API returned a JSON value that is not an object")

        orders = payload.get("orders")
        logger.info(
            "Shopify API response received",
            extra={"orders": len(orders) if isinstance(orders, list) else None, "root_keys": sorted(payload.keys())},
        )
        return payload
