from quart import Blueprint, jsonify

from . import service
from ..auth.service import require_admin
from ..common.http import json_body

bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@bp.post("")
async def orders_create():
    data = await json_body()
    order_id = await service.place_order(data)
    return jsonify({"id": order_id})


@bp.get("")
@require_admin
async def orders_list():
    return jsonify(await service.list_all())


@bp.get("/<int:order_id>/items")
@require_admin
async def order_items(order_id: int):
    return jsonify(await service.get_items(order_id))


@bp.put("/<int:order_id>/status")
@require_admin
async def order_status(order_id: int):
    data = await json_body()
    await service.update_status(order_id, data.get("status"))
    return jsonify({"success": True})
