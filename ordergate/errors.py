from __future__ import annotations


class ErrorType:
    UPSTREAM_PAYLOAD = "upstream_payload"
    ORDER_RESOLUTION = "order_resolution"
    ITEM_RESOLUTION = "item_resolution"
    ACTION_DISPATCH = "action_dispatch"
    PERSISTENCE = "persistence"


class OrdergateError(Exception):
    """Base typed exception for ordergate pipeline errors."""


class InvariantViolationError(OrdergateError):
    pass


class NotFoundError(OrdergateError):
    pass


class ConfigurationError(OrdergateError):
    pass


class UpstreamPayloadError(OrdergateError):
    error_type = ErrorType.UPSTREAM_PAYLOAD


class StorageError(OrdergateError):
    error_type = ErrorType.PERSISTENCE


class ActionDispatchError(OrdergateError):
    error_type = ErrorType.ACTION_DISPATCH


class ShopifyAPIError(UpstreamPayloadError):
    """Raised when the storefront API cannot deliver an order batch."""
