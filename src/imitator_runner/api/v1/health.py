"""Operational endpoints: health check and Prometheus metrics."""
import os
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from imitator_runner.api.deps import get_db
from imitator_runner.config import get_settings
from imitator_runner.core.enums import StreamBackend
from imitator_runner.runner.storage import storage_root

router = APIRouter()


class HealthData(BaseModel):
    """Health check data model."""

    status: str
    database: str
    storage: str
    stream: str


def _database_status(db: Session) -> str:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return "disconnected"
    return "connected"


def _storage_status() -> str:
    # Workspaces are created under the root for every job
    root = storage_root(get_settings().STORAGE_ROOT)
    if root.is_dir() and os.access(root, os.W_OK | os.X_OK):
        return "writable"
    return "unavailable"


async def _stream_status() -> str:
    if get_settings().STREAM_BACKEND != StreamBackend.REDIS:
        return "memory"

    from imitator_runner.core.redis import ping_stream_redis

    return "connected" if await ping_stream_redis() else "disconnected"


@router.get("/health", response_model=HealthData)
async def health_check(db: Session = Depends(get_db)) -> HealthData:
    """
    Health check endpoint.

    Returns:
        HealthData: Status of the database, the storage root and the stream backend
    """
    data = HealthData(
        status="healthy",
        database=_database_status(db),
        storage=_storage_status(),
        stream=await _stream_status(),
    )
    if "disconnected" in (data.database, data.stream) or data.storage != "writable":
        data.status = "unhealthy"
    return data


@router.get("/metrics", tags=["metrics"], include_in_schema=False)
def metrics() -> Response:
    """Expose every registered metric in the Prometheus text format."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
