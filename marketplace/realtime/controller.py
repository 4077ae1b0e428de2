import asyncio
import json
import logging

from quart import Blueprint, Response, request

from ..common.redis_client import get_redis
from ..common.config import settings

_logger = logging.getLogger(__name__)

bp = Blueprint("realtime", __name__)


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_GROUP_CHANNEL)
        await pubsub.aclose()
    except Exception as e:
        _logger.debug("Ignoring pubsub close error: %s", e)


def _format_event(data, group_filter):
    """Render one pubsub message as an SSE frame, or None when filtered out."""
    try:
        payload = json.loads(data) if isinstance(data, str) else data
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    if group_filter is not None and payload.get("group_id") != group_filter:
        return None
    return f"event: group\ndata: {json.dumps(payload)}\n\n"


@bp.get("/events")
async def sse_events():
    """Stream group fill updates; `?group_id=` narrows to a single group."""
    group_filter = request.args.get("group_id", type=int)

    async def gen():
        pubsub = None
        backoff = 1.0
        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    if pubsub is None:
                        r = await get_redis()
                        pubsub = r.pubsub(ignore_subscribe_messages=True)
                        await pubsub.subscribe(settings.REDIS_GROUP_CHANNEL)
                    message = await pubsub.get_message(timeout=5.0)
                    if message:
                        frame = _format_event(message.get("data"), group_filter)
                        if frame:
                            yield frame
                    else:
                        # keep-alive for proxies
                        yield ": keep-alive\n\n"
                    backoff = 1.0
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    _logger.warning("Group event stream error, retrying in %ss | err=%s", int(backoff), e)
                    yield f": redis-error, retrying in {int(backoff)}s\n\n"
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 15.0)
                    await _close_pubsub(pubsub)
                    pubsub = None
        finally:
            await _close_pubsub(pubsub)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(gen(), mimetype="text/event-stream", headers=headers)
