"""Fixtures for API tests."""
import pytest
from fastapi.testclient import TestClient
from imitator_runner.main import app
from imitator_runner.api.deps import get_db

API = "/api/imitator"


@pytest.fixture
def client(db_session):
    """
    Create FastAPI test client with a database override.

    Args:
        db_session: Test database session from root conftest

    Returns:
        TestClient: FastAPI test client
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def run_job(client):
    """Submit a run request and return the parsed response."""

    def _run(models, property_file=("p.imiprop", b"always safe\n"), options=None, timeout=None):
        files = [("models", (name, content)) for name, content in models]
        files.append(("property", property_file))
        data = {}
        if options is not None:
            data["options"] = options
        if timeout is not None:
            data["timeout"] = str(timeout)
        return client.post(f"{API}/run", files=files, data=data)

    return _run
