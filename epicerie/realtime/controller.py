import asyncio
import json
import logging

from quart import Blueprint, Response, request

from ..auth.service import validate
from ..common.config import settings
from ..common.redis_client import get_redis

bp = Blueprint("realtime", __name__, url_prefix="/api")

_logger = logging.getLogger(__name__)


@bp.get("/events")
async def sse_events():
    # EventSource cannot send headers, so the admin token rides in the query
    admin_id = await validate(request.args.get("token"))
    _logger.info("Event stream opened | admin_id=%s", admin_id)

    async def gen():
        pubsub = None
        r = None
        backoff = 1.0
        # Advise client on retry
        yield "retry: 3000\n\n"
        try:
            while True:
                try:
                    if r is None:
                        r = await get_redis()
                    if pubsub is None:
                        pubsub = r.pubsub(ignore_subscribe_messages=True)
                        await pubsub.subscribe(settings.REDIS_EVENTS_CHANNEL)
                    message = await pubsub.get_message(timeout=5.0)
                    if message:
                        data = message.get("data")
                        try:
                            payload = json.loads(data)
                        except (TypeError, ValueError):
                            continue
                        yield f"event: {payload.get('type', 'message')}\n"
                        yield f"data: {json.dumps(payload)}\n\n"
                    else:
                        # Keep-alive to prevent closes by proxies
                        yield ": keep-alive\n\n"
                    backoff = 1.0  # reset after success
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    _logger.warning("Event stream redis error | err=%s", e)
                    yield f": redis-error, retrying in {int(backoff)}s\n\n"
                    await asyncio.sleep(backoff)
                    backoff = min(backoff * 2, 15.0)
                    await _close_pubsub(pubsub)
                    pubsub = None
                    r = None
        finally:
            await _close_pubsub(pubsub)
            _logger.info("Event stream closed | admin_id=%s", admin_id)

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }
    return Response(gen(), mimetype="text/event-stream", headers=headers)


async def _close_pubsub(pubsub) -> None:
    if pubsub is None:
        return
    try:
        await pubsub.unsubscribe(settings.REDIS_EVENTS_CHANNEL)
        await pubsub.close()
    except Exception as e:
        _logger.debug("Ignoring pubsub close error | err=%s", e)
