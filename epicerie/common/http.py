from typing import Dict, Any

from quart import request

from .errors import ValidationError


async def json_body() -> Dict[str, Any]:
    data = await request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
