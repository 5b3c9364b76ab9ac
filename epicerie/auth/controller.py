from quart import Blueprint, jsonify

from .service import issue, revoke
from ..common.errors import ValidationError
from ..common.http import json_body

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/login")
async def login():
    data = await json_body()
    username = data.get("username")
    password = data.get("password")
    if not username or not password:
        raise ValidationError("Username and password required")
    session = await issue(username, password)
    return jsonify(session)


@bp.post("/logout")
async def logout():
    data = await json_body()
    token = data.get("token")
    if not token:
        raise ValidationError("Token required")
    await revoke(token)
    return jsonify({"success": True})
