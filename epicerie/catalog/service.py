import logging
from typing import Any, Dict, List, Optional

from ..common.database import (
    delete_product,
    fetch_product,
    fetch_products,
    insert_product,
    replace_product,
)
from ..common.errors import ValidationError
from ..common.redis_client import publish_event

_logger = logging.getLogger(__name__)


def _number(data: Dict[str, Any], field: str, cast, default=None):
    value = data.get(field, default)
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        value = cast(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if value < 0:
        raise ValidationError(f"{field} must not be negative")
    return value


def _count(data: Dict[str, Any], field: str, default: int = 0) -> int:
    value = data.get(field, default)
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be an integer")
    return _number(data, field, int, default)


def _flag(data: Dict[str, Any], field: str, default: bool) -> bool:
    if field not in data:
        return default
    value = data[field]
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def _tags(value) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise ValidationError("tags must be a list of strings")
    # set semantics, first occurrence wins
    return list(dict.fromkeys(tag.strip() for tag in value if tag.strip()))


def parse_product_input(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a full product record.

    Every column is produced, with defaults for absent optional fields, so
    that an update always replaces the whole record.
    """
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Product name required")
    image_url = data.get("image_url")
    if image_url is not None and not isinstance(image_url, str):
        raise ValidationError("image_url must be a string")
    return {
        "name": name.strip(),
        "description": str(data.get("description") or ""),
        "price": _number(data, "price", float),
        "unit": str(data.get("unit") or ""),
        "image_url": image_url,
        "in_stock": _flag(data, "in_stock", True),
        "stock_quantity": _count(data, "stock_quantity"),
        "tags": _tags(data.get("tags")),
    }


async def list_public(tag: Optional[str] = None) -> List[Dict[str, Any]]:
    products = await fetch_products(in_stock_only=True)
    if tag:
        products = [p for p in products if tag in p["tags"]]
    return products


async def list_tags() -> List[str]:
    tags = set()
    for prod in await fetch_products(in_stock_only=True):
        tags.update(prod["tags"])
    return sorted(tags)


async def list_all() -> List[Dict[str, Any]]:
    return await fetch_products()


async def get(product_id: int) -> Optional[Dict[str, Any]]:
    return await fetch_product(product_id)


async def create(admin_id: int, data: Dict[str, Any]) -> int:
    values = parse_product_input(data)
    product_id = await insert_product(values, created_by=admin_id)
    _logger.info("Product created | product_id=%s admin_id=%s", product_id, admin_id)
    await publish_event("product.created", {"product_id": product_id})
    return product_id


async def update(product_id: int, data: Dict[str, Any]) -> bool:
    values = parse_product_input(data)
    updated = await replace_product(product_id, values)
    if not updated:
        _logger.info("Product update matched nothing | product_id=%s", product_id)
        return False
    _logger.info("Product updated | product_id=%s", product_id)
    await publish_event("product.updated", {"product_id": product_id})
    return True


async def delete(product_id: int) -> bool:
    deleted = await delete_product(product_id)
    _logger.info("Product delete | product_id=%s deleted=%s", product_id, deleted)
    if deleted:
        await publish_event("product.deleted", {"product_id": product_id})
    return deleted
