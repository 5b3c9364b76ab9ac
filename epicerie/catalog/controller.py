from quart import Blueprint, g, jsonify, request

from . import service
from ..auth.service import require_admin
from ..common.http import json_body

bp = Blueprint("catalog", __name__, url_prefix="/api/products")


@bp.get("/public")
async def products_public():
    items = await service.list_public(tag=request.args.get("tag"))
    return jsonify(items)


@bp.get("/tags")
async def products_tags():
    return jsonify(await service.list_tags())


@bp.get("")
@require_admin
async def products_list():
    return jsonify(await service.list_all())


@bp.post("")
@require_admin
async def products_create():
    data = await json_body()
    product_id = await service.create(g.admin_id, data)
    return jsonify({"id": product_id})


@bp.put("/<int:product_id>")
@require_admin
async def products_update(product_id: int):
    data = await json_body()
    # Unknown ids are not an error here; the update simply has no effect
    await service.update(product_id, data)
    return jsonify({"success": True})


@bp.delete("/<int:product_id>")
@require_admin
async def products_delete(product_id: int):
    await service.delete(product_id)
    return jsonify({"success": True})
