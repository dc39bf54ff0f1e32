"""
Redis pub/sub for change notifications OR silent no-op.
Controlled by FF_USE_REDIS flag.

Notifications only tell subscribers that something changed; they carry no
deltas. Subscribers re-fetch.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)

_redis_client = None

Unsubscribe = Callable[[], Awaitable[None]]


async def _get_redis():
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis

        settings = get_settings()
        _redis_client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
    return _redis_client


async def publish(channel: str, event_type: str, data: Any = None) -> None:
    """
    Publish a change event. If Redis is disabled, this is a no-op.
    """
    flags = get_flags()
    if not flags.use_redis:
        return

    try:
        client = await _get_redis()
        payload = json.dumps({"type": event_type, "data": data})
        await client.publish(channel, payload)
    except Exception as e:
        # Never crash on notification failure
        logger.warning("Redis publish failed (channel=%s): %s", channel, e)


async def _noop() -> None:
    return None


async def subscribe(channel: str, callback: Callable[[dict], Any]) -> Unsubscribe:
    """
    Invoke callback(event) for every event published on channel.
    Returns an async unsubscribe(). Callback may be sync or async.
    """
    flags = get_flags()
    if not flags.use_redis:
        return _noop

    client = await _get_redis()
    pubsub = client.pubsub()
    await pubsub.subscribe(channel)

    async def _listen():
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                event = json.loads(message["data"])
            except (TypeError, ValueError):
                event = {"type": None, "data": message["data"]}
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Subscriber callback failed (channel=%s)", channel)

    task = asyncio.create_task(_listen())
    logger.debug("Subscribed to %s", channel)

    async def unsubscribe() -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.debug("Unsubscribed from %s", channel)

    return unsubscribe


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None
        logger.info("Redis connection closed")
