from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict
import uuid

from ordergate.errors import InvariantViolationError


RawOrderPayload = Dict[str, Any]

PLAYER_PLACEHOLDER = "%player%"


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ResolvedOrder:
    """One successfully processed line item of a storefront order."""

    account_identity: str
    item_name: str
    external_order_id: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)

    def __post_init__(self):
        for field_name in ("account_identity", "item_name", "external_order_id"):
            value = getattr(self, field_name)
            if not isinstance(value, str) or not value.strip():
                raise InvariantViolationError(f"ResolvedOrder.{field_name} must be a non-empty string")

    def to_record(self) -> dict[str, str]:
        return {
            "id": self.id,
            "username": self.account_identity,
            "package_name": self.item_name,
            "order_id": self.external_order_id,
            "created_at": self.created_at,
        }
