"""Selection of the output sink backend."""
from imitator_runner.config import Settings
from imitator_runner.core.enums import StreamBackend
from imitator_runner.streaming.sink import BroadcastSink, OutputSink


def create_sink(settings: Settings) -> OutputSink:
    """
    Build the output sink configured by ``STREAM_BACKEND``.

    Args:
        settings: Application settings

    Returns:
        OutputSink: In-memory or Redis backed sink
    """
    if settings.STREAM_BACKEND == StreamBackend.REDIS:
        from imitator_runner.core.redis import get_stream_redis
        from imitator_runner.streaming.redis_sink import RedisSink

        return RedisSink(get_stream_redis())
    return BroadcastSink(history_channels=settings.STREAM_HISTORY_CHANNELS)
