"""Account identity resolution for storefront orders.

Storefront checkouts collect the buyer's in-game account name through whatever
field the shop owner happened to configure: a line item property, a cart
attribute, a note. ``IdentityExtractor`` runs an ordered list of strategies over
the raw order and returns the first non-empty value; the order of the list is
the priority contract and must not be rearranged.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Iterator, Protocol

from ordergate.orders import RawOrderPayload


logger = logging.getLogger("ordergate.identity")


IDENTITY_FIELD_NAMES: tuple[str, ...] = (
    "username",
    "minecraft username",
    "minecraft_username",
    "minecraft-username",
    "mc username",
    "mc-username",
    "mc_username",
    "ign",
    "spielername",
    "player",
    "player_name",
    "player-name",
    "playername",
)
_IDENTITY_FIELD_SET = frozenset(IDENTITY_FIELD_NAMES)

FLATTENED_PROPERTY_FIELDS: tuple[str, ...] = (
    "properties_username",
    "properties_minecraft_username",
    "properties_mc_username",
    "properties_ign",
    "properties_spielername",
    "properties_player",
    "properties_player_name",
    "properties_playername",
)

ACCOUNT_VARIANT_FIELDS = frozenset({"account_type", "minecraft_account_type"})
PRIMARY_ACCOUNT_VARIANT = "Java"
SECONDARY_ACCOUNT_VARIANT = "Bedrock"
VARIANT_PREFIX = "!"

_IDENTITY_SHAPE = re.compile(r"^\w{3,16}$", re.ASCII)
_NOTE_KEYS: tuple[str, ...] = IDENTITY_FIELD_NAMES + ("minecraft", "mc")
_NOTE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(rf"(?<![\w-]){re.escape(key)}\s*:\s*(\w{{3,16}})(?!\w)", re.IGNORECASE | re.ASCII)
    for key in _NOTE_KEYS
)
_CANDIDATE_KEY_HINTS = ("username", "user_name", "user-name", "ign", "spielername", "minecraft", "player")


def is_identity_field(name: Any) -> bool:
    return isinstance(name, str) and name.strip().lower() in _IDENTITY_FIELD_SET


def looks_like_identity(text: Any) -> bool:
    return isinstance(text, str) and bool(_IDENTITY_SHAPE.match(text))


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _list_field(container: Any, key: str) -> list[Any]:
    if not isinstance(container, dict):
        return []
    value = container.get(key)
    return value if isinstance(value, list) else []


def _name_value_pairs(entries: Iterable[Any]) -> Iterator[tuple[Any, Any]]:
    for entry in entries:
        if isinstance(entry, dict):
            yield entry.get("name"), entry.get("value")


def _first_identity_in_pairs(entries: Iterable[Any]) -> str | None:
    for name, value in _name_value_pairs(entries):
        if not is_identity_field(name):
            continue
        found = _text(value)
        if found:
            return found
    return None


def _first_identity_in_mapping(mapping: dict[str, Any]) -> str | None:
    lowered: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(key, str):
            lowered.setdefault(key.strip().lower(), value)
    for field_name in IDENTITY_FIELD_NAMES:
        found = _text(lowered.get(field_name))
        if found:
            return found
    return None


def extract_identity_from_text(text: Any) -> str | None:
    """
    Pull an account name out of free text.

    ``key: value`` pairs for any identity field name win; otherwise the whole
    text is accepted only when it already has the shape of an account name.
    """
    note = _text(text)
    if note is None:
        return None
    for pattern in _NOTE_PATTERNS:
        match = pattern.search(note)
        if match:
            return match.group(1)
    if looks_like_identity(note):
        return note
    return None


class IdentityStrategy(Protocol):
    name: str

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        ...


class LineItemPropertiesStrategy:
    name = "line_item_properties"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        for item in _list_field(payload, "line_items"):
            if not isinstance(item, dict):
                continue
            properties = item.get("properties")
            if isinstance(properties, list):
                found = _first_identity_in_pairs(properties)
            elif isinstance(properties, dict):
                found = _first_identity_in_mapping(properties)
            else:
                found = None
            if found:
                return found
            for field_name in FLATTENED_PROPERTY_FIELDS:
                found = _text(item.get(field_name))
                if found:
                    return found
        return None


class NoteAttributesStrategy:
    name = "note_attributes"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        return _first_identity_in_pairs(_list_field(payload, "note_attributes"))


class CustomerNoteStrategy:
    name = "customer_note"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        customer = payload.get("customer")
        if not isinstance(customer, dict):
            return None
        return extract_identity_from_text(customer.get("note"))


class OrderAttributesStrategy:
    name = "attributes"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        attributes = payload.get("attributes")
        if isinstance(attributes, list):
            return _first_identity_in_pairs(attributes)
        if isinstance(attributes, dict):
            return _first_identity_in_mapping(attributes)
        return None


class CartAttributesStrategy:
    name = "cart_attributes"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        cart_attributes = payload.get("cart_attributes")
        if isinstance(cart_attributes, dict):
            return _first_identity_in_mapping(cart_attributes)
        return None


class OrderNoteStrategy:
    name = "order_note"

    def try_extract(self, payload: RawOrderPayload) -> str | None:
        return _text(payload.get("note"))


def default_strategies() -> list[IdentityStrategy]:
    return [
        LineItemPropertiesStrategy(),
        NoteAttributesStrategy(),
        CustomerNoteStrategy(),
        OrderAttributesStrategy(),
        CartAttributesStrategy(),
        OrderNoteStrategy(),
    ]


class IdentityExtractor:
    def __init__(self, strategies: list[IdentityStrategy] | None = None):
        self._strategies = list(strategies) if strategies is not None else default_strategies()

    def extract(self, payload: RawOrderPayload) -> str | None:
        if not isinstance(payload, dict):
            return None
        for strategy in self._strategies:
            found = strategy.try_extract(payload)
            if found:
                logger.debug("Identity resolved", extra={"strategy": strategy.name, "identity": found})
                return found
        return None


def resolve_account_variant(payload: RawOrderPayload) -> str:
    variant = PRIMARY_ACCOUNT_VARIANT
    if not isinstance(payload, dict):
        return variant

    for name, value in _name_value_pairs(_list_field(payload, "note_attributes")):
        found = _text(value)
        if isinstance(name, str) and name.strip().lower() == "account_type" and found:
            variant = found
            break

    # A later line item overrides an earlier one; within one item the first match wins.
    for item in _list_field(payload, "line_items"):
        for name, value in _name_value_pairs(_list_field(item, "properties")):
            found = _text(value)
            if isinstance(name, str) and name.strip().lower() in ACCOUNT_VARIANT_FIELDS and found:
                variant = found
                break

    return variant


def apply_account_variant(identity: str, variant: str | None) -> str:
    if str(variant or "").strip().lower() != SECONDARY_ACCOUNT_VARIANT.lower():
        return identity
    if identity.startswith(VARIANT_PREFIX):
        return identity
    return f"{VARIANT_PREFIX}{identity}"


def find_identity_candidates(value: Any, path: str = "") -> list[tuple[str, str]]:
    """List ``(path, value)`` pairs whose key looks like an identity field."""
    candidates: list[tuple[str, str]] = []

    if isinstance(value, dict):
        for key, child in value.items():
            child_path = f"{path}.{key}" if path else str(key)
            lowered = str(key).lower()
            if any(hint in lowered for hint in _CANDIDATE_KEY_HINTS) and isinstance(child, str) and child.strip():
                candidates.append((child_path, child))
            if isinstance(child, dict) and is_identity_field(child.get("name")):
                found = _text(child.get("value"))
                if found:
                    candidates.append((f"{child_path}.value", found))
            candidates.extend(find_identity_candidates(child, child_path))
        return candidates

    if isinstance(value, list):
        for index, child in enumerate(value):
            child_path = f"{path}[{index}]"
            if isinstance(child, dict) and is_identity_field(child.get("name")):
                found = _text(child.get("value"))
                if found:
                    candidates.append((f"{child_path}.value", found))
            candidates.extend(find_identity_candidates(child, child_path))

    return candidates
