"""Live output channels keyed by job identifier and model prefix."""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple, Any
from imitator_runner.core.enums import ExecutionStatus, StreamMessageKind

logger = logging.getLogger(__name__)

ChannelKey = Tuple[str, str]


@dataclass(frozen=True)
class StreamMessage:
    """One message on an output stream."""

    identifier: str
    prefix: str
    kind: StreamMessageKind
    data: str

    @property
    def is_end(self) -> bool:
        return self.kind == StreamMessageKind.END

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "prefix": self.prefix,
            "kind": self.kind.value,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamMessage":
        return cls(
            identifier=data["identifier"],
            prefix=data["prefix"],
            kind=StreamMessageKind(data["kind"]),
            data=data.get("data", ""),
        )


class OutputChannel:
    """
    Write handle for one (identifier, prefix) stream.

    Handed to a model runner so it never needs to know the sink's keys.
    """

    def __init__(self, sink: "OutputSink", identifier: str, prefix: str):
        self.sink = sink
        self.identifier = identifier
        self.prefix = prefix
        self.closed = False

    async def write(self, data: str) -> None:
        if self.closed:
            raise RuntimeError(f"Channel {self.identifier}/{self.prefix} is closed")
        if data:
            await self.sink.publish(self.identifier, self.prefix, data)

    async def close(self, status: ExecutionStatus) -> None:
        if self.closed:
            return
        self.closed = True
        await self.sink.close(self.identifier, self.prefix, status)


class OutputSink(ABC):
    """
    Publish/subscribe hub for model output.

    Every stream is keyed by (identifier, prefix) so output of different
    models is never interleaved on one stream.
    """

    def channel(self, identifier: str, prefix: str) -> OutputChannel:
        return OutputChannel(self, identifier, prefix)

    @abstractmethod
    async def publish(self, identifier: str, prefix: str, data: str) -> None:
        """Push a chunk of output to the stream's subscribers."""

    @abstractmethod
    async def close(self, identifier: str, prefix: str, status: ExecutionStatus) -> None:
        """Send the end message carrying the final status."""

    @abstractmethod
    def subscribe(self, identifier: str, prefix: str) -> AsyncIterator[StreamMessage]:
        """Iterate over the stream's messages until the end message."""


class BroadcastSink(OutputSink):
    """
    In-process sink backed by asyncio queues.

    Buffers each stream so late subscribers receive the output produced
    before they connected. Buffers of finished streams are dropped oldest
    first once more than ``history_channels`` are kept.

    Subscribing to a stream that was never opened, or whose buffer was
    dropped, ends at once without messages.
    """

    def __init__(self, history_channels: int = 256):
        self.history_channels = history_channels
        self._history: "OrderedDict[ChannelKey, List[StreamMessage]]" = OrderedDict()
        self._subscribers: Dict[ChannelKey, Set[asyncio.Queue]] = {}
        self._open: Set[ChannelKey] = set()
        self._closed: Set[ChannelKey] = set()

    def channel(self, identifier: str, prefix: str) -> OutputChannel:
        self._open.add((identifier, prefix))
        return super().channel(identifier, prefix)

    async def publish(self, identifier: str, prefix: str, data: str) -> None:
        message = StreamMessage(identifier, prefix, StreamMessageKind.OUTPUT, data)
        self._dispatch((identifier, prefix), message)

    async def close(self, identifier: str, prefix: str, status: ExecutionStatus) -> None:
        key = (identifier, prefix)
        message = StreamMessage(identifier, prefix, StreamMessageKind.END, str(status))
        self._dispatch(key, message)
        self._open.discard(key)
        self._closed.add(key)
        self._subscribers.pop(key, None)
        self._evict()

    async def subscribe(self, identifier: str, prefix: str) -> AsyncIterator[StreamMessage]:
        key = (identifier, prefix)
        # Snapshot and registration happen together so no message falls in between
        backlog = list(self._history.get(key, []))
        queue: Optional[asyncio.Queue] = None
        if key not in self._closed and (key in self._open or backlog):
            queue = asyncio.Queue()
            self._subscribers.setdefault(key, set()).add(queue)

        try:
            for message in backlog:
                yield message
            while queue is not None:
                message = await queue.get()
                yield message
                if message.is_end:
                    break
        finally:
            if queue is not None:
                self._release(key, queue)

    def _release(self, key: ChannelKey, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(key)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            del self._subscribers[key]

    def _dispatch(self, key: ChannelKey, message: StreamMessage) -> None:
        if key in self._closed:
            logger.warning(f"Dropping message for closed stream {key[0]}/{key[1]}")
            return
        self._history.setdefault(key, []).append(message)
        for queue in self._subscribers.get(key, ()):
            queue.put_nowait(message)

    def _evict(self) -> None:
        while len(self._closed) > self.history_channels:
            for key in self._history:
                if key in self._closed:
                    del self._history[key]
                    self._closed.discard(key)
                    break
            else:
                break
