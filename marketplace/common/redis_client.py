import asyncio
import logging
import ssl
from typing import Optional

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
                conn_kwargs = {
                    "host": settings.REDIS_HOST,
                    "port": settings.REDIS_PORT,
                    "username": settings.REDIS_USERNAME or None,
                    "password": settings.REDIS_PASSWORD or None,
                    "db": settings.REDIS_DB,
                    "decode_responses": True,
                }
                if settings.REDIS_SSL:
                    # relaxed verification for local/dev managed instances
                    conn_kwargs.update({"ssl": True, "ssl_cert_reqs": ssl.CERT_NONE})
                client = Redis(**conn_kwargs)
                try:
                    await client.ping()
                except Exception as e:
                    _logger.error("Failed to connect to Redis at %s:%s: %s", settings.REDIS_HOST, settings.REDIS_PORT, e)
                    raise
                _redis = client
                _logger.info(
                    "Connected to Redis at %s:%s (SSL=%s)",
                    settings.REDIS_HOST,
                    settings.REDIS_PORT,
                    settings.REDIS_SSL,
                )
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        try:
            await _redis.aclose()
        finally:
            _redis = None
