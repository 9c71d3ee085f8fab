"""Normalization of snapshot payloads from the external sync source.

The upstream spreadsheet drifts between field spellings, so each canonical
field maps to an ordered list of accepted aliases. Aliases are resolved once
per record here; nothing past this module looks at raw field names.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from .logger import logger
from .schemas import Item, LineStatus, OrderLine, Snapshot, normalize_mnemonic

ITEM_ALIASES: dict[str, tuple[str, ...]] = {
    "item_id": ("id", "itemId", "ItemID"),
    "mnemonic": ("mnemonic", "Mnemonic", "MNEMONIC"),
    "category": ("category", "Category"),
    "name": ("name", "itemName", "ItemName", "Name"),
    "price": ("price", "Price"),
    "initial_quantity": (
        "quantity",
        "initialQuantity",
        "InitialQuantity",
        "AvailableBalance",
        "availableBalance",
        "Balance",
    ),
    "allow_upsell": ("allowUpsell", "AllowUpsell", "allow_upsell"),
}

ORDER_ALIASES: dict[str, tuple[str, ...]] = {
    "line_id": ("id", "lineId", "LineID"),
    "group_id": ("OrderID", "orderId", "OrderId", "order_id"),
    "mnemonic": ("Mnemonic", "mnemonic"),
    "item_name": ("ItemName", "itemName", "Item"),
    "quantity": ("Quantity", "quantity", "Qty"),
    "buyer_name": ("Buyer", "buyerName", "BuyerName", "Name"),
    "buyer_email": ("Email", "buyerEmail", "email"),
    "address": ("Address", "address"),
    "timestamp": ("Timestamp", "timestamp", "Date"),
    "status": ("Status", "AppStatus", "status"),
}

INVENTORY_KEYS = ("Inventory", "inventory", "items")
ORDER_KEYS = ("Orders", "orders")

TRUTHY_STRINGS = {"true", "1", "yes", "checked"}


def pick(record: dict, aliases: Iterable[str], default: Any = None) -> Any:
    """Return the first alias present in ``record`` with a non-empty value."""
    for alias in aliases:
        value = record.get(alias)
        if value is None or value == "":
            continue
        return value
    return default


def is_truthy(value: Any) -> bool:
    """Coerce spreadsheet-style flags ("TRUE", "1", "yes", "checked") to bool."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_STRINGS


def _to_int(value: Any) -> int:
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, TypeError, OverflowError):
        return 0


def _to_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


def parse_timestamp(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 instant; naive values are taken as UTC.

    Returns:
        datetime | None: aware datetime, or None when the value is unparsable.
    """
    if not raw:
        return None
    text = str(raw).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_item(raw: dict, index: int) -> Optional[Item]:
    """Map one inventory record onto an Item; records without a mnemonic are skipped."""
    mnemonic = normalize_mnemonic(pick(raw, ITEM_ALIASES["mnemonic"], ""))
    if not mnemonic:
        logger.warning(f"Skipping inventory record #{index} without a mnemonic: {raw}")
        return None
    return Item(
        item_id=str(pick(raw, ITEM_ALIASES["item_id"], f"sync-item-{index}")),
        mnemonic=mnemonic,
        category=str(pick(raw, ITEM_ALIASES["category"], "General")),
        name=str(pick(raw, ITEM_ALIASES["name"], "Unknown Item")),
        price=_to_price(pick(raw, ITEM_ALIASES["price"], 0)),
        initial_quantity=max(0, _to_int(pick(raw, ITEM_ALIASES["initial_quantity"], 0))),
        allow_upsell=is_truthy(pick(raw, ITEM_ALIASES["allow_upsell"])),
        sequence=index,
    )


def _status_hint(value: Any) -> Optional[LineStatus]:
    if value is None:
        return None
    return LineStatus.WAITLISTED if "waitlist" in str(value).lower() else LineStatus.CONFIRMED


def normalize_order(raw: dict, index: int, position_in_group: int = 0) -> Optional[OrderLine]:
    """Map one order record onto an OrderLine.

    Args:
        raw: Record as delivered by the sync source.
        index: Position of the record in the snapshot.
        position_in_group: Position among earlier records sharing its group id,
            used to build a line id that stays stable across repeated syncs.

    Returns:
        OrderLine | None: None for records with a non-positive quantity.
    """
    quantity = _to_int(pick(raw, ORDER_ALIASES["quantity"], 0))
    if quantity <= 0:
        logger.warning(f"Dropping order record #{index} with non-positive quantity: {raw}")
        return None
    group_id = str(pick(raw, ORDER_ALIASES["group_id"], "")).strip()
    line_id = pick(raw, ORDER_ALIASES["line_id"])
    if line_id is None:
        line_id = f"{group_id}-{position_in_group}" if group_id else f"sync-order-{index}"
    return OrderLine(
        line_id=str(line_id),
        group_id=group_id,
        mnemonic=str(pick(raw, ORDER_ALIASES["mnemonic"], "")),
        item_name=str(pick(raw, ORDER_ALIASES["item_name"], "Unknown Item")),
        quantity=quantity,
        buyer_name=str(pick(raw, ORDER_ALIASES["buyer_name"], "Guest")),
        buyer_email=str(pick(raw, ORDER_ALIASES["buyer_email"], "-")),
        address=str(pick(raw, ORDER_ALIASES["address"], "-")),
        timestamp=str(pick(raw, ORDER_ALIASES["timestamp"], "")),
        status=_status_hint(pick(raw, ORDER_ALIASES["status"])),
    )


def _records(value: Any, section: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Ignoring {section} section, expected a list but got {type(value).__name__}")
        return []
    return value


def parse_payload(data: Any) -> Snapshot:
    """Turn a raw sync document into a Snapshot.

    A bare list is treated as inventory only; an object may carry inventory
    under ``Inventory``/``inventory``/``items`` and orders under
    ``Orders``/``orders``.
    """
    raw_items: list = []
    raw_orders: list = []
    if isinstance(data, list):
        raw_items = data
    elif isinstance(data, dict):
        raw_items = _records(pick(data, INVENTORY_KEYS), "inventory")
        raw_orders = _records(pick(data, ORDER_KEYS), "orders")

    items = []
    for idx, raw in enumerate(raw_items):
        if isinstance(raw, dict) and (item := normalize_item(raw, idx)) is not None:
            items.append(item)

    orders = []
    seen_per_group: dict[str, int] = {}
    for idx, raw in enumerate(raw_orders):
        if not isinstance(raw, dict):
            continue
        group_key = str(pick(raw, ORDER_ALIASES["group_id"], "")).strip().upper()
        position = seen_per_group.get(group_key, 0)
        seen_per_group[group_key] = position + 1
        line = normalize_order(raw, idx, position)
        if line is not None:
            orders.append(line)

    logger.debug(f"Parsed snapshot payload: {len(items)} items, {len(orders)} order lines")
    return Snapshot(items=items, orders=orders)


def to_sync_payload(items: Iterable[Item], orders: Iterable[OrderLine]) -> dict:
    """Build the outbound sync document using the upstream field names."""
    return {
        "action": "sync",
        "Inventory": [
            {
                "Category": item.category,
                "ItemName": item.name,
                "Price": float(item.price),
                "InitialQuantity": item.initial_quantity,
                "Mnemonic": item.mnemonic,
                "AllowUpsell": bool(item.allow_upsell),
            }
            for item in items
        ],
        "Orders": [
            {
                "OrderID": line.group_id,
                "Timestamp": line.timestamp,
                "Buyer": line.buyer_name,
                "Email": line.buyer_email,
                "ItemName": line.item_name,
                "Mnemonic": line.mnemonic,
                "Quantity": line.quantity,
                "Address": line.address,
                "AppStatus": line.status.value if line.status else None,
            }
            for line in orders
        ],
    }
