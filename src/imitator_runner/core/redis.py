"""Redis client shared by the stream backend and the health check."""
import logging
from typing import Optional
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError
from imitator_runner.config import get_settings

logger = logging.getLogger(__name__)

# One client per process; pub/sub connections are taken from its pool
_stream_client: Optional[AsyncRedis] = None


def get_stream_redis() -> AsyncRedis:
    """
    Get the async Redis client used for output streaming.

    The client is created on first use from ``REDIS_URL``.

    Returns:
        AsyncRedis: Async Redis client instance
    """
    global _stream_client
    if _stream_client is None:
        url = get_settings().REDIS_URL
        logger.info(f"Connecting stream backend to {url}")
        _stream_client = AsyncRedis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
        )
    return _stream_client


async def ping_stream_redis() -> bool:
    """Return True when the stream backend answers a PING."""
    try:
        return bool(await get_stream_redis().ping())
    except (RedisError, OSError) as e:
        logger.warning(f"Stream backend unreachable: {e}")
        return False


async def close_stream_redis() -> None:
    """Close the client and forget it; called on application shutdown."""
    global _stream_client
    if _stream_client is not None:
        await _stream_client.aclose()
        _stream_client = None
