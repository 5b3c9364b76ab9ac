import logging
from typing import Any, Dict, List

from ..common.config import settings
from ..common.database import create_order, fetch_order_items, fetch_orders, update_order_status
from ..common.errors import PersistenceError, ValidationError
from ..common.redis_client import publish_event
from .model import ORDER_STATUSES

_logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ("customer_name", "customer_email", "customer_phone", "delivery_address")


def parse_order_input(data: Dict[str, Any]) -> Dict[str, Any]:
    """Check the order header before anything touches the database.

    Line items are not inspected here: a malformed item fails on insert and
    takes the whole order down with it.
    """
    missing = [field for field in REQUIRED_TEXT_FIELDS if not data.get(field)]
    if data.get("total_amount") is None:
        missing.append("total_amount")
    items = data.get("items")
    if not isinstance(items, list) or not items:
        missing.append("items")
    if missing:
        raise ValidationError("Missing required fields: " + ", ".join(missing))

    total = data["total_amount"]
    if isinstance(total, bool):
        raise ValidationError("total_amount must be a number")
    try:
        total = float(total)
    except (TypeError, ValueError):
        raise ValidationError("total_amount must be a number")

    header = {field: str(data[field]) for field in REQUIRED_TEXT_FIELDS}
    header["total_amount"] = total
    header["notes"] = str(data.get("notes") or "")
    return header


async def place_order(data: Dict[str, Any]) -> int:
    header = parse_order_input(data)
    items = data["items"]
    try:
        order_id = await create_order(header, items, decrement_stock=settings.ORDER_DECREMENT_STOCK)
    except Exception as e:
        # Raw database detail stays in the server log
        _logger.error("Order rolled back | customer_email=%s items=%s err=%s", header["customer_email"], len(items), e)
        raise PersistenceError("Failed to create order") from e

    _logger.info("Order placed | order_id=%s items=%s total=%s", order_id, len(items), header["total_amount"])
    await publish_event(
        "order.created",
        {"order_id": order_id, "customer_name": header["customer_name"], "total_amount": header["total_amount"]},
    )
    return order_id


def parse_status(status: Any) -> str:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")
    return status


async def update_status(order_id: int, status: Any) -> bool:
    # No transition graph: any allowed status may follow any other
    status = parse_status(status)
    updated = await update_order_status(order_id, status)
    _logger.info("Order status | order_id=%s status=%s updated=%s", order_id, status, updated)
    if updated:
        await publish_event("order.status", {"order_id": order_id, "status": status})
    return updated


async def list_all() -> List[Dict[str, Any]]:
    return await fetch_orders()


async def get_items(order_id: int) -> List[Dict[str, Any]]:
    return await fetch_order_items(order_id)
