"""Runner data models and result classes."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Optional, Dict, Any
from imitator_runner.core.enums import ExecutionStatus


@dataclass
class FileCandidate:
    """
    An uploaded file that has not been placed in a workspace yet.

    The stream is read once, when the file is placed.
    """

    filename: str
    stream: BinaryIO


@dataclass
class ModelFile:
    """A model placed in a job workspace."""

    original_name: str
    stored_path: Path
    prefix: str


@dataclass
class Job:
    """
    One run request.

    The workspace is derived from the identifier alone, so two jobs never
    share a directory.
    """

    identifier: str
    workspace: Path
    property_name: str
    property_path: Path
    models: List[ModelFile]
    options: List[str]
    timeout: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def prefixes(self) -> List[str]:
        return [model.prefix for model in self.models]


@dataclass
class ExecutionResult:
    """
    Result of running the tool on one model.

    Created when the run starts and finalized exactly once.
    """

    prefix: str
    output: str = ""
    status: Optional[ExecutionStatus] = None
    exit_code: Optional[int] = None
    generated_files: List[str] = field(default_factory=list)
    duration: float = 0.0
    error_message: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self.status is not None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def finalize(
        self,
        status: ExecutionStatus,
        duration: float,
        exit_code: Optional[int] = None,
        generated_files: Optional[List[str]] = None,
        error_message: Optional[str] = None,
    ) -> "ExecutionResult":
        """
        Record the final outcome of the run.

        Raises:
            RuntimeError: If the result was already finalized
        """
        if self.finalized:
            raise RuntimeError(f"Result for '{self.prefix}' already finalized as {self.status}")

        self.status = status
        self.duration = duration
        self.exit_code = exit_code
        self.generated_files = list(generated_files or [])
        self.error_message = error_message
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prefix": self.prefix,
            "output": self.output,
            "status": self.status.value if self.status else None,
            "exit_code": self.exit_code,
            "generated_files": list(self.generated_files),
            "duration": self.duration,
            "error_message": self.error_message,
        }


@dataclass
class JobResult:
    """Outcome of a whole job, in model dispatch order."""

    identifier: str
    options: List[str]
    models: List[str]
    property_name: str
    outputs: List[ExecutionResult]
    created_at: datetime
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def failed(self) -> bool:
        return any(not result.success for result in self.outputs)

    def generated_paths(self) -> List[str]:
        """List generated files as paths relative to the job workspace."""
        return [
            f"{result.prefix}/{name}"
            for result in self.outputs
            for name in result.generated_files
        ]
