"""API dependencies for FastAPI."""
from typing import Generator
from starlette.requests import HTTPConnection
from sqlalchemy.orm import Session
from imitator_runner.config import get_settings
from imitator_runner.core.database import SessionLocal
from imitator_runner.runner.archive import ArchiveBuilder
from imitator_runner.runner.coordinator import JobCoordinator
from imitator_runner.runner.download import DownloadGateway
from imitator_runner.runner.storage import storage_root
from imitator_runner.streaming.sink import OutputSink


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_sink(connection: HTTPConnection) -> OutputSink:
    """
    Dependency to get the application's output sink.

    Returns:
        OutputSink: Sink created at startup
    """
    return connection.app.state.sink


def get_coordinator(connection: HTTPConnection) -> JobCoordinator:
    """
    Dependency to get the application's job coordinator.

    One coordinator serves every request so the concurrency cap applies
    across jobs.

    Returns:
        JobCoordinator: Coordinator created at startup
    """
    return connection.app.state.coordinator


def get_download_gateway() -> DownloadGateway:
    """Dependency to get a DownloadGateway rooted at the storage root."""
    return DownloadGateway(storage_root(get_settings().STORAGE_ROOT))


def get_archive_builder() -> ArchiveBuilder:
    """Dependency to get an ArchiveBuilder using the configured archive name."""
    return ArchiveBuilder(archive_name=get_settings().ARCHIVE_NAME)
