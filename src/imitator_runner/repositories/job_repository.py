"""Job repository for database operations."""
from typing import Optional, List
from sqlalchemy.orm import Session
from imitator_runner.models.job import JobRecord
from imitator_runner.runner.models import JobResult
from imitator_runner.core.exceptions import NotFoundError


class JobRepository:
    """Repository for JobRecord database operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def save(self, job_result: JobResult) -> JobRecord:
        """
        Store the outcome of a finished job.

        Args:
            job_result: Aggregated job result

        Returns:
            JobRecord: Created record
        """
        record = JobRecord(
            identifier=job_result.identifier,
            property_name=job_result.property_name,
            models=list(job_result.models),
            options=list(job_result.options),
            outputs=[result.to_dict() for result in job_result.outputs],
            failed=job_result.failed,
            created_at=job_result.created_at,
            completed_at=job_result.completed_at,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def get_by_identifier(self, identifier: str) -> Optional[JobRecord]:
        """
        Retrieve a job by identifier.

        Args:
            identifier: Job identifier

        Returns:
            Optional[JobRecord]: Record or None if not found
        """
        return self.db.query(JobRecord).filter(JobRecord.identifier == identifier).first()

    def get_or_raise(self, identifier: str) -> JobRecord:
        """
        Retrieve a job by identifier.

        Raises:
            NotFoundError: If no job has this identifier
        """
        record = self.get_by_identifier(identifier)
        if record is None:
            raise NotFoundError(f"Job {identifier} not found")
        return record

    def list_recent(self, limit: int = 50) -> List[JobRecord]:
        """
        List the most recent jobs.

        Args:
            limit: Maximum number of records

        Returns:
            List[JobRecord]: Records, newest first
        """
        return (
            self.db.query(JobRecord)
            .order_by(JobRecord.created_at.desc())
            .limit(limit)
            .all()
        )
