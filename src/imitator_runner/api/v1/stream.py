"""WebSocket endpoint streaming live model output."""
import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from imitator_runner.api.deps import get_sink
from imitator_runner.runner.storage import is_safe_segment
from imitator_runner.streaming.sink import OutputSink

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/stream/{identifier}/{prefix}")
async def stream_output(
    websocket: WebSocket,
    identifier: str,
    prefix: str,
    sink: OutputSink = Depends(get_sink),
):
    """
    Send each output chunk of one model as JSON until the run ends.

    Messages have ``kind`` "output" (``data`` is a chunk) or "end"
    (``data`` is the final status).
    """
    if not (is_safe_segment(identifier) and is_safe_segment(prefix)):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        async for message in sink.subscribe(identifier, prefix):
            await websocket.send_json(message.to_dict())
    except WebSocketDisconnect:
        logger.info(f"Subscriber of {identifier}/{prefix} disconnected")
        return

    await websocket.close()
