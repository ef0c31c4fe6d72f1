"""Record and change schema definitions and validation.

Constants:
    RECORD_SCHEMA: Allowed inventory fields and their types
    REQUIRED_NEW_RECORD_FIELDS: Fields a freshly added record must carry
    STOCK_ADJUST_SCHEMA: Payload fields of a stock_adjust change

Functions:
    validate_record: Validate inventory record fields
    validate_change: Validate a pending change before it is enqueued
"""
from .constants import (
    CHANGE_ADD,
    CHANGE_DELETE,
    CHANGE_STOCK_ADJUST,
    CHANGE_TYPES,
    CHANGE_UPDATE,
    MOVEMENT_TYPES,
)
from .receipt import StopRule

_NUMBER = (int, float)
_OPTIONAL_STR = (str, type(None))


RECORD_SCHEMA = {
    "id": str,
    "name": str,
    "brand": _OPTIONAL_STR,
    "model": _OPTIONAL_STR,
    "category": _OPTIONAL_STR,
    "quality": _OPTIONAL_STR,
    "location": _OPTIONAL_STR,
    "barcode": _OPTIONAL_STR,
    "stock": int,
    "price_buy": _NUMBER,
    "price_sell": _NUMBER,
    "parent_id": _OPTIONAL_STR,
    "variants": list,
    "variant_name": _OPTIONAL_STR,
    "is_parent": (bool, type(None)),
}

REQUIRED_NEW_RECORD_FIELDS = ["name", "stock"]

STOCK_ADJUST_SCHEMA = {
    "new_stock": int,
    "old_stock": int,
    "quantity": int,
    "type": str,
    "reason": str,
}


def _is_type(value, expected) -> bool:
    # bool is an int subclass; never accept it for numeric fields
    if isinstance(value, bool) and expected in (int, _NUMBER):
        return False
    return isinstance(value, expected)


def validate_record(data: dict, partial: bool = False) -> bool:
    """Validate inventory record fields.

    Unknown keys (server timestamps, markers) are ignored.

    Args:
        data: Record dict (full record, or a patch when partial=True)
        partial: Skip the required-field check for patches

    Returns:
        True if valid

    Raises:
        StopRule: On a missing required field, wrong type, negative
            stock or price, or a record that is both parent and variant
    """
    if not isinstance(data, dict):
        raise StopRule("Record must be a dict")

    if not partial:
        for name in REQUIRED_NEW_RECORD_FIELDS:
            if data.get(name) in (None, ""):
                raise StopRule(f"Missing required field: {name}")

    for name, expected in RECORD_SCHEMA.items():
        if name in data and not _is_type(data[name], expected):
            raise StopRule(f"Field {name} has invalid type {type(data[name]).__name__}")

    if data.get("stock") is not None and data["stock"] < 0:
        raise StopRule(f"Stock cannot be negative: {data['stock']}")
    for price in ("price_buy", "price_sell"):
        if data.get(price) is not None and data[price] < 0:
            raise StopRule(f"{price} cannot be negative: {data[price]}")

    if data.get("parent_id") and data.get("variants"):
        raise StopRule("A record cannot be both a parent and a variant")

    return True


def validate_change(change) -> bool:
    """Validate a PendingChange before it reaches the durable queue.

    Raises:
        StopRule: On unknown type, missing target, or a stock_adjust whose
            precomputed new stock is negative
    """
    if change.type not in CHANGE_TYPES:
        raise StopRule(f"Unknown change type: {change.type}")
    if not change.collection:
        raise StopRule("Change has no target collection")

    if change.type in (CHANGE_UPDATE, CHANGE_DELETE, CHANGE_STOCK_ADJUST) and not change.item_id:
        raise StopRule(f"Item ID is required for {change.type} operation")

    if change.type == CHANGE_ADD:
        validate_record(change.data)
    elif change.type == CHANGE_UPDATE:
        validate_record(change.data, partial=True)
    elif change.type == CHANGE_STOCK_ADJUST:
        for name, expected in STOCK_ADJUST_SCHEMA.items():
            if name not in change.data:
                raise StopRule(f"stock_adjust payload missing {name}")
            if not _is_type(change.data[name], expected):
                raise StopRule(f"stock_adjust field {name} has invalid type")
        if change.data["new_stock"] < 0:
            raise StopRule(f"Stock cannot go below 0 (new_stock={change.data['new_stock']})")
        if change.data["type"] not in MOVEMENT_TYPES:
            raise StopRule(f"Unknown movement type: {change.data['type']}")

    return True
