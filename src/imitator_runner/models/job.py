"""Job record model for the history of finished runs."""
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlalchemy import String, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column
from imitator_runner.core.database import Base


class JobRecord(Base):
    """
    Stored outcome of one job.

    Keeps what is needed to show a past result again and to archive its
    generated files.
    """

    __tablename__ = "jobs"

    identifier: Mapped[str] = mapped_column(String(36), primary_key=True)
    property_name: Mapped[str] = mapped_column(String(255), nullable=False)
    models: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    options: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    outputs: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    failed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_jobs_created_at", "created_at"),
    )

    def generated_paths(self) -> List[str]:
        """List generated files as paths relative to the job workspace."""
        return [
            f"{output['prefix']}/{name}"
            for output in self.outputs
            for name in output.get("generated_files", [])
        ]

    def __repr__(self) -> str:
        """Return string representation of JobRecord."""
        return f"<JobRecord(identifier={self.identifier}, failed={self.failed})>"
