"""Shared pytest fixtures for all tests."""
import io
import os
import shlex
import sys
import tempfile
from pathlib import Path
import pytest

FAKE_TOOL = Path(__file__).parent / "fixtures" / "fake_imitator.py"
FAKE_TOOL_COMMAND = f"{shlex.quote(sys.executable)} {shlex.quote(str(FAKE_TOOL))}"

# Set test environment before importing anything else
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="imitator-runner-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_ROOT / 'test.db'}"
os.environ["STORAGE_ROOT"] = str(_TEST_ROOT / "uploads")
os.environ["TOOL_COMMAND"] = FAKE_TOOL_COMMAND
os.environ["STREAM_BACKEND"] = "memory"
os.environ["KILL_GRACE_SECONDS"] = "2"
os.environ["DEFAULT_TIMEOUT_SECONDS"] = "30"
os.environ["DISCONNECT_POLL_INTERVAL"] = "0.2"

from imitator_runner.config import Settings  # noqa: E402
from imitator_runner.runner.models import FileCandidate  # noqa: E402
from imitator_runner.streaming.sink import BroadcastSink  # noqa: E402


def make_candidate(filename: str, content: str = "") -> FileCandidate:
    """Build an uploaded file from text content."""
    return FileCandidate(filename=filename, stream=io.BytesIO(content.encode("utf-8")))


@pytest.fixture
def candidate():
    """Factory fixture building FileCandidate objects."""
    return make_candidate


@pytest.fixture
def settings(tmp_path):
    """
    Settings isolated to a temporary storage root.

    Uses the fake tool so no real verification tool is needed.
    """
    return Settings(
        STORAGE_ROOT=str(tmp_path / "uploads"),
        TOOL_COMMAND=FAKE_TOOL_COMMAND,
        KILL_GRACE_SECONDS=1.0,
        DEFAULT_TIMEOUT_SECONDS=30.0,
        MAX_CONCURRENT_MODELS=4,
    )


@pytest.fixture
def sink():
    """Provide an in-memory output sink."""
    return BroadcastSink()


@pytest.fixture(scope="session")
def db_engine():
    """
    Create the test database tables for the session.

    Uses the SQLite file configured above.
    """
    from imitator_runner.core.database import engine, init_db, Base

    init_db()
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine):
    """Create a database session and empty the jobs table afterwards."""
    from sqlalchemy.orm import Session
    from imitator_runner.models.job import JobRecord

    session = Session(bind=db_engine)
    yield session
    session.rollback()
    session.query(JobRecord).delete()
    session.commit()
    session.close()
