from typing import Any, Dict

from quart import request

from .errors import InvalidArgument


async def json_body() -> Dict[str, Any]:
    data = await request.get_json(force=True, silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object")
    return data
