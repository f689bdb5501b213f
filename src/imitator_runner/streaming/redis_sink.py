"""Redis pub/sub output sink for multi-process deployments."""
import json
import logging
from typing import AsyncIterator
from redis.asyncio import Redis as AsyncRedis
from imitator_runner.core.enums import ExecutionStatus, StreamMessageKind
from imitator_runner.streaming.sink import OutputSink, StreamMessage

logger = logging.getLogger(__name__)


class RedisSink(OutputSink):
    """
    Output sink publishing JSON messages on Redis pub/sub channels.

    Pub/sub keeps no history: subscribers only see messages published after
    they subscribed.
    """

    def __init__(self, redis: AsyncRedis, channel_prefix: str = "imitator:stream"):
        """
        Initialize Redis sink.

        Args:
            redis: Async Redis client instance
            channel_prefix: Prefix of every pub/sub channel name
        """
        self.redis = redis
        self.channel_prefix = channel_prefix

    def channel_name(self, identifier: str, prefix: str) -> str:
        return f"{self.channel_prefix}:{identifier}:{prefix}"

    async def publish(self, identifier: str, prefix: str, data: str) -> None:
        message = StreamMessage(identifier, prefix, StreamMessageKind.OUTPUT, data)
        await self._send(message)

    async def close(self, identifier: str, prefix: str, status: ExecutionStatus) -> None:
        message = StreamMessage(identifier, prefix, StreamMessageKind.END, str(status))
        await self._send(message)

    async def subscribe(self, identifier: str, prefix: str) -> AsyncIterator[StreamMessage]:
        pubsub = self.redis.pubsub()
        channel = self.channel_name(identifier, prefix)
        await pubsub.subscribe(channel)
        try:
            async for raw in pubsub.listen():
                if raw.get("type") != "message":
                    continue
                try:
                    message = StreamMessage.from_dict(json.loads(raw["data"]))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Ignoring malformed message on {channel}: {e}")
                    continue
                yield message
                if message.is_end:
                    break
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def _send(self, message: StreamMessage) -> None:
        channel = self.channel_name(message.identifier, message.prefix)
        await self.redis.publish(channel, json.dumps(message.to_dict()))
