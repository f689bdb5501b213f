"""Integration tests for JobRepository."""
from datetime import datetime, timedelta, timezone
from uuid import uuid4
import pytest
from imitator_runner.core.enums import ExecutionStatus
from imitator_runner.core.exceptions import NotFoundError
from imitator_runner.repositories.job_repository import JobRepository
from imitator_runner.runner.models import ExecutionResult, JobResult


def make_result(created_at=None, status=ExecutionStatus.SUCCESS):
    output = ExecutionResult(prefix="a", output="done\n").finalize(
        status, 0.4, exit_code=0, generated_files=["a.res", "a.dot"]
    )
    return JobResult(
        identifier=str(uuid4()),
        options=["-merge"],
        models=["a.imi"],
        property_name="p.imiprop",
        outputs=[output],
        created_at=created_at or datetime.now(timezone.utc),
    )


@pytest.mark.integration
class TestJobRepository:
    """Integration tests for JobRepository."""

    def test_save_job_result(self, db_session):
        """Test storing a finished job."""
        repo = JobRepository(db_session)
        job_result = make_result()

        record = repo.save(job_result)

        assert record.identifier == job_result.identifier
        assert record.models == ["a.imi"]
        assert record.options == ["-merge"]
        assert record.failed is False
        assert record.outputs[0]["status"] == "SUCCESS"
        assert record.outputs[0]["output"] == "done\n"
        assert record.completed_at is not None

    def test_failed_flag_is_stored(self, db_session):
        """Test the failed flag follows the model results."""
        repo = JobRepository(db_session)

        record = repo.save(make_result(status=ExecutionStatus.TIMED_OUT))

        assert record.failed is True

    def test_get_by_identifier(self, db_session):
        """Test retrieving a job by identifier."""
        repo = JobRepository(db_session)
        job_result = make_result()
        repo.save(job_result)

        found = repo.get_by_identifier(job_result.identifier)

        assert found is not None
        assert found.property_name == "p.imiprop"
        assert found.generated_paths() == ["a/a.res", "a/a.dot"]

    def test_get_by_identifier_not_found(self, db_session):
        """Test retrieving an unknown job returns None."""
        assert JobRepository(db_session).get_by_identifier(str(uuid4())) is None

    def test_get_or_raise(self, db_session):
        """Test unknown jobs raise NotFoundError."""
        with pytest.raises(NotFoundError, match="not found"):
            JobRepository(db_session).get_or_raise(str(uuid4()))

    def test_list_recent_newest_first(self, db_session):
        """Test listing orders by creation time and honours the limit."""
        repo = JobRepository(db_session)
        now = datetime.now(timezone.utc)
        old = repo.save(make_result(created_at=now - timedelta(hours=2)))
        middle = repo.save(make_result(created_at=now - timedelta(hours=1)))
        new = repo.save(make_result(created_at=now))

        recent = repo.list_recent(limit=2)

        assert [r.identifier for r in recent] == [new.identifier, middle.identifier]
        assert old.identifier not in [r.identifier for r in recent]
