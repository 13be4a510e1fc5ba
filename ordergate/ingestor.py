from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import json
import logging
import threading
from typing import Any, Callable
import uuid

from ordergate.errors import ErrorType, StorageError
from ordergate.executors.action_executor import ActionExecutor
from ordergate.identity import (
    IdentityExtractor,
    apply_account_variant,
    find_identity_candidates,
    resolve_account_variant,
)
from ordergate.logging_config import clear_order_id, set_batch_id, set_order_id
from ordergate.notifications import NotificationSink, NullNotifier
from ordergate.orders import RawOrderPayload, ResolvedOrder
from ordergate.products import ProductResolver
from ordergate.storage.base import DedupStore


logger = logging.getLogger("ordergate.ingestor")

ORDER_ID_FIELDS = ("order_number", "id", "name", "order_id")
DEFAULT_RECENCY_WINDOW = timedelta(days=30)

PROCESSED = "processed"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class OrderOutcome:
    external_order_id: str | None
    status: str
    reason: str = ""
    records: list[ResolvedOrder] = field(default_factory=list)
    actions_dispatched: int = 0
    actions_failed: int = 0


@dataclass
class IngestSummary:
    batch_id: str
    received: int = 0
    aborted: bool = False
    abort_reason: str = ""
    evicted: int = 0
    outcomes: list[OrderOutcome] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def processed(self) -> int:
        return self._count(PROCESSED)

    @property
    def duplicates(self) -> int:
        return self._count(DUPLICATE)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def actions_dispatched(self) -> int:
        return sum(outcome.actions_dispatched for outcome in self.outcomes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "received": self.received,
            "processed": self.processed,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
            "failed": self.failed,
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "actions_dispatched": self.actions_dispatched,
            "evicted": self.evicted,
        }


def resolve_external_order_id(order: RawOrderPayload) -> str | None:
    for key in ORDER_ID_FIELDS:
        value = order.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_quantity(value: Any) -> int | None:
    """Purchased quantity floored at 1; ``None`` when the value is malformed."""
    if value is None:
        return 1
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(1, value)
    if isinstance(value, float):
        return max(1, int(value)) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return max(1, int(value.strip()))
        except ValueError:
            return None
    return None


class OrderIngestor:
    """Runs fetched order batches through identity, dedup, resolution and execution.

    One instance owns the product cache (via its resolver) and the recency
    cache; ``ingest_response`` holds a lock for the whole pass so two passes
    never interleave.
    """

    def __init__(
        self,
        store: DedupStore,
        resolver: ProductResolver,
        executor: ActionExecutor,
        identity_extractor: IdentityExtractor | None = None,
        notifier: NotificationSink | None = None,
        dedup_fail_open: bool = True,
        recency_window: timedelta = DEFAULT_RECENCY_WINDOW,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._resolver = resolver
        self._executor = executor
        self._identity_extractor = identity_extractor or IdentityExtractor()
        self._notifier = notifier or NullNotifier()
        self._dedup_fail_open = dedup_fail_open
        self._recency_window = recency_window
        self._now_fn = now_fn
        self._recent: dict[str, datetime] = {}
        self._pass_lock = threading.Lock()

    @property
    def store(self) -> DedupStore:
        return self._store

    @property
    def resolver(self) -> ProductResolver:
        return self._resolver

    def _now(self) -> datetime:
        if self._now_fn is not None:
            return self._now_fn()
        return datetime.now(timezone.utc)

    def ingest_json(self, text: str) -> IngestSummary:
        try:
            response = json.loads(text)
        except (TypeError, json.JSONDecodeError) as exc:
            summary = IngestSummary(batch_id=uuid.uuid4().hex, aborted=True, abort_reason="malformed_json")
            logger.warning(
                "Storefront response is not valid JSON: %s",
                exc,
                extra={"event_type": "batch_aborted", "error_type": ErrorType.UPSTREAM_PAYLOAD},
            )
            return summary
        return self.ingest_response(response)

    def ingest_response(self, response: Any) -> IngestSummary:
        batch_id = uuid.uuid4().hex
        with self._pass_lock:
            set_batch_id(batch_id)
            try:
                return self._ingest(batch_id, response)
            finally:
                clear_order_id()
                set_batch_id("")

    def _abort(self, summary: IngestSummary, reason: str, message: str, *args: Any) -> IngestSummary:
        summary.aborted = True
        summary.abort_reason = reason
        logger.warning(
            message,
            *args,
            extra={"event_type": "batch_aborted", "error_type": ErrorType.UPSTREAM_PAYLOAD, "reason": reason},
        )
        return summary

    def _ingest(self, batch_id: str, response: Any) -> IngestSummary:
        summary = IngestSummary(batch_id=batch_id)

        if response is None:
            return self._abort(summary, "no_response", "No response received from storefront API")
        if not isinstance(response, dict):
            return self._abort(summary, "invalid_response", "Storefront response is not a JSON object")
        if "errors" in response:
            return self._abort(summary, "api_errors", "Storefront API returned errors: %s", response.get("errors"))
        if "orders" not in response:
            return self._abort(summary, "missing_orders", "Storefront response does not contain an orders field")
        orders = response.get("orders")
        if not isinstance(orders, list):
            return self._abort(summary, "invalid_orders", "Storefront orders field is not an array")

        summary.received = len(orders)
        logger.debug("Processing order batch", extra={"orders": len(orders)})

        for index, order in enumerate(orders):
            try:
                outcome = self.process_order(order)
            except Exception:
                logger.exception("Error processing order at index %s", index, extra={"event_type": "order_failed"})
                outcome = OrderOutcome(external_order_id=None, status=FAILED, reason="unexpected_error")
            finally:
                clear_order_id()
            summary.outcomes.append(outcome)

        summary.evicted = self.evict_stale()
        logger.info("Order batch ingested", extra={"event_type": "batch_ingested", **summary.to_dict()})
        return summary

    def process_order(self, order: RawOrderPayload) -> OrderOutcome:
        if not isinstance(order, dict):
            logger.warning("Order entry is not an object, skipping", extra={"entry_type": type(order).__name__})
            return OrderOutcome(external_order_id=None, status=SKIPPED, reason="invalid_order")

        order_id = resolve_external_order_id(order)
        if order_id is None:
            logger.warning(
                "Order missing order number, skipping",
                extra={"error_type": ErrorType.ORDER_RESOLUTION, "available_fields": sorted(map(str, order.keys()))},
            )
            return OrderOutcome(external_order_id=None, status=SKIPPED, reason="missing_order_id")
        set_order_id(order_id)

        if self._already_processed(order_id):
            return OrderOutcome(external_order_id=order_id, status=DUPLICATE, reason="already_processed")

        identity = self._identity_extractor.extract(order)
        if not identity:
            logger.warning(
                "Order has invalid or missing username, skipping",
                extra={"event_type": "identity_missing", "error_type": ErrorType.ORDER_RESOLUTION},
            )
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Identity candidates", extra={"candidates": find_identity_candidates(order)})
            return OrderOutcome(external_order_id=order_id, status=SKIPPED, reason="missing_identity")

        identity = apply_account_variant(identity, resolve_account_variant(order))

        line_items = order.get("line_items")
        if not isinstance(line_items, list) or not line_items:
            logger.warning("Order has no line items, skipping", extra={"error_type": ErrorType.ORDER_RESOLUTION})
            return OrderOutcome(external_order_id=order_id, status=SKIPPED, reason="missing_line_items")

        outcome = OrderOutcome(external_order_id=order_id, status=SKIPPED, reason="no_configured_items")
        claimed = False
        for index, item in enumerate(line_items):
            try:
                resolved = self._resolve_line_item(item, index)
                if resolved is None:
                    continue
                item_name, templates, quantity = resolved

                if not claimed:
                    if not self._claim(order_id):
                        outcome.status = DUPLICATE
                        outcome.reason = "claimed_by_another_pass"
                        return outcome
                    claimed = True
                    self._recent[order_id] = self._now()

                report = self._executor.execute(templates, identity, quantity)
                outcome.actions_dispatched += report.dispatched
                outcome.actions_failed += report.failed

                record = self._record(ResolvedOrder(account_identity=identity, item_name=item_name, external_order_id=order_id))
                if record is not None:
                    outcome.records.append(record)
            except Exception:
                logger.exception("Error processing line item %s", index, extra={"event_type": "line_item_failed"})

        if claimed:
            outcome.status = PROCESSED
            outcome.reason = ""
        return outcome

    def _already_processed(self, order_id: str) -> bool:
        if order_id in self._recent:
            return True
        try:
            return self._store.exists(order_id)
        except StorageError:
            logger.error(
                "Dedup store query failed",
                exc_info=True,
                extra={"event_type": "dedup_query_failed", "fail_open": self._dedup_fail_open},
            )
            return not self._dedup_fail_open

    def _claim(self, order_id: str) -> bool:
        try:
            return self._store.claim(order_id)
        except StorageError:
            logger.error(
                "Dedup store claim failed",
                exc_info=True,
                extra={"event_type": "dedup_claim_failed", "fail_open": self._dedup_fail_open},
            )
            return self._dedup_fail_open

    def _resolve_line_item(self, item: Any, index: int) -> tuple[str, list[str], int] | None:
        if not isinstance(item, dict):
            logger.warning("Line item %s is not an object, skipping", index, extra={"error_type": ErrorType.ITEM_RESOLUTION})
            return None

        name = item.get("name")
        item_name = name.strip() if isinstance(name, str) else ""
        if not item_name:
            logger.warning("Line item %s has no name, skipping", index, extra={"error_type": ErrorType.ITEM_RESOLUTION})
            return None

        # Unconfigured products are expected; they are skipped without a warning.
        templates = self._resolver.resolve(item_name)
        if not templates:
            logger.debug("No product mapping for line item", extra={"product": item_name})
            return None

        quantity = parse_quantity(item.get("quantity"))
        if quantity is None:
            logger.warning(
                "Line item %s has a malformed quantity, skipping",
                index,
                extra={"error_type": ErrorType.ITEM_RESOLUTION, "product": item_name, "quantity": item.get("quantity")},
            )
            return None

        return item_name, templates, quantity

    def _record(self, order: ResolvedOrder) -> ResolvedOrder | None:
        try:
            self._store.insert(order)
        except StorageError:
            logger.error(
                "Failed to record processed order",
                exc_info=True,
                extra={"event_type": "order_record_failed", "product": order.item_name},
            )
            return None

        try:
            self._notifier.notify(order)
        except Exception:
            logger.exception("Failed to send order notification", extra={"product": order.item_name})
        return order

    def recently_processed(self, order_id: str) -> bool:
        return order_id in self._recent

    def evict_stale(self, max_age: timedelta | None = None) -> int:
        cutoff = self._now() - (max_age or self._recency_window)
        stale = [order_id for order_id, stamped_at in self._recent.items() if stamped_at < cutoff]
        for order_id in stale:
            del self._recent[order_id]
        if stale:
            logger.debug("Evicted stale recency entries", extra={"evicted": len(stale)})
        return len(stale)
