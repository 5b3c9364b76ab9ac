import asyncio
import json
import logging
import ssl
from typing import Optional, Dict, Any

from redis.asyncio import Redis

from .config import settings

_logger = logging.getLogger(__name__)

_redis: Optional[Redis] = None
_lock = asyncio.Lock()


async def get_redis() -> Redis:
    global _redis
    if _redis is None:
        async with _lock:
            if _redis is None:
                try:
                    conn_kwargs = {
                        "host": settings.REDIS_HOST,
                        "port": settings.REDIS_PORT,
                        "username": settings.REDIS_USERNAME or None,
                        "password": settings.REDIS_PASSWORD or None,
                        "db": settings.REDIS_DB,
                        "decode_responses": True,
                    }
                    if settings.REDIS_SSL:
                        conn_kwargs.update(
                            {
                                "ssl": True,
                                # relax cert verification for local/dev unless overridden by env
                                "ssl_cert_reqs": ssl.CERT_NONE,
                            }
                        )
                    _redis = Redis(**conn_kwargs)
                    # Validate connection quickly
                    await _redis.ping()
                    _logger.info(
                        "Connected to Redis at %s:%s (SSL=%s)",
                        settings.REDIS_HOST,
                        settings.REDIS_PORT,
                        settings.REDIS_SSL,
                    )
                except Exception as e:
                    _logger.error("Failed to connect to Redis: %s", str(e))
                    _redis = None
                    raise
    return _redis


async def publish_event(kind: str, payload: Dict[str, Any]) -> bool:
    """Publish a live event for the admin dashboard.

    Called after the change is committed, so a Redis outage is logged and
    reported as False instead of failing the caller.
    """
    if not settings.EVENTS_ENABLED:
        return False
    message = json.dumps({"type": kind, **payload})
    try:
        r = await get_redis()
        await r.publish(settings.REDIS_EVENTS_CHANNEL, message)
    except Exception as e:
        _logger.warning("Event publish failed | type=%s err=%s", kind, e)
        return False
    _logger.debug("Published event | type=%s channel=%s", kind, settings.REDIS_EVENTS_CHANNEL)
    return True


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        try:
            await _redis.close()
        finally:
            _redis = None
