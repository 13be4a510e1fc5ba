from __future__ import annotations

import logging
import re
from typing import Protocol

import requests

from ordergate.config import DEFAULT_NOTIFICATION_MESSAGE, Settings
from ordergate.orders import PLAYER_PLACEHOLDER, ResolvedOrder


logger = logging.getLogger("ordergate.notifications")

_COLOR_CODE = re.compile(r"&[0-9a-fk-orA-FK-OR]")


class NotificationSink(Protocol):
    def notify(self, order: ResolvedOrder) -> None:
        ...


def strip_color_codes(message: str) -> str:
    return _COLOR_CODE.sub("", message)


def format_order_message(template: str, order: ResolvedOrder) -> str:
    return (
        template.replace(PLAYER_PLACEHOLDER, order.account_identity)
        .replace("%package%", order.item_name)
        .replace("%order_id%", order.external_order_id)
    )


class NullNotifier:
    def notify(self, order: ResolvedOrder) -> None:
        return None


class OrderNotifier:
    """Announces processed orders in the log and, optionally, to a webhook."""

    def __init__(
        self,
        message_template: str = DEFAULT_NOTIFICATION_MESSAGE,
        webhook_url: str | None = None,
        enabled: bool = True,
        timeout_seconds: int = 5,
    ):
        self._template = message_template or DEFAULT_NOTIFICATION_MESSAGE
        self._webhook_url = str(webhook_url or "").strip() or None
        self._enabled = enabled
        self._timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self._enabled

    def notify(self, order: ResolvedOrder) -> None:
        if not self._enabled or order is None:
            return

        message = strip_color_codes(format_order_message(self._template, order))
        logger.info(
            message,
            extra={
                "event_type": "order_processed",
                "player": order.account_identity,
                "package": order.item_name,
                "external_order_id": order.external_order_id,
            },
        )

        if self._webhook_url:
            self._post_webhook(message, order)

    def _post_webhook(self, message: str, order: ResolvedOrder) -> None:
        try:
            response = requests.post(
                self._webhook_url,
                json={"content": message, "order_id": order.external_order_id, "record_id": order.id},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException:
            logger.warning("Notification webhook request failed", exc_info=True)
            return
        if response.status_code >= 400:
            logger.warning(
                "Notification webhook rejected message",
                extra={"status_code": response.status_code, "external_order_id": order.external_order_id},
            )


def build_notifier(settings: Settings) -> NotificationSink:
    if not settings.notifications_enabled:
        return NullNotifier()
    return OrderNotifier(
        message_template=settings.notification_message,
        webhook_url=settings.notification_webhook_url,
        enabled=True,
    )
