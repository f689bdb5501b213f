"""Pydantic schemas for the run, download and archive API."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, computed_field, model_validator
from imitator_runner.core.enums import ExecutionStatus
from imitator_runner.models.job import JobRecord
from imitator_runner.runner.models import JobResult


class ExecutionResultSchema(BaseModel):
    """Outcome of one model run."""

    prefix: str = Field(..., description="Key of the model's output stream and result")
    output: str = Field(..., description="Tool output (stdout and stderr)")
    status: ExecutionStatus
    exit_code: Optional[int] = None
    generated_files: List[str] = Field(default_factory=list, description="Files written by the tool")
    duration: float = Field(..., description="Run time in seconds")
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}

    @computed_field(description="Generated files as workspace paths, accepted by /download as `file`")
    @property
    def paths(self) -> List[str]:
        return [f"{self.prefix}/{name}" for name in self.generated_files]


class JobResultSchema(BaseModel):
    """Outcome of a whole job."""

    identifier: str
    options: List[str] = Field(..., description="Options actually passed to the tool")
    models: List[str] = Field(..., description="Original model file names")
    property: str = Field(..., description="Original property file name")
    outputs: List[ExecutionResultSchema]
    failed: bool = Field(..., description="True when any model did not succeed")
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: JobResult) -> "JobResultSchema":
        return cls(
            identifier=result.identifier,
            options=result.options,
            models=result.models,
            property=result.property_name,
            outputs=[ExecutionResultSchema.model_validate(o) for o in result.outputs],
            failed=result.failed,
            created_at=result.created_at,
            completed_at=result.completed_at,
        )

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobResultSchema":
        return cls(
            identifier=record.identifier,
            options=record.options,
            models=record.models,
            property=record.property_name,
            outputs=[ExecutionResultSchema.model_validate(o) for o in record.outputs],
            failed=record.failed,
            created_at=record.created_at,
            completed_at=record.completed_at,
        )


class RunResponse(BaseModel):
    """Response of a run request."""

    result: JobResultSchema


class JobListResponse(BaseModel):
    """Response listing recent jobs."""

    result: List[JobResultSchema]


class DownloadRequest(BaseModel):
    """Request for one file of a job."""

    identifier: Optional[str] = Field(default=None, description="Job identifier")
    file: Optional[str] = Field(default=None, description="File name")
    model: Optional[str] = Field(
        default=None, description="Model prefix, for files generated by the tool"
    )

    @model_validator(mode="after")
    def split_workspace_path(self) -> "DownloadRequest":
        # "prefix/name" as listed in a result's paths
        if self.model is None and self.file and "/" in self.file:
            self.model, _, self.file = self.file.partition("/")
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "identifier": "0b6f4b8e-4d7e-4a53-9f55-5c8f1c2f3a10",
                    "file": "flipflop.res",
                    "model": "flipflop",
                }
            ]
        }
    }


class ArchiveRequest(BaseModel):
    """Request to bundle every generated file of a job."""

    identifier: Optional[str] = Field(default=None, description="Job identifier")


class ArchiveData(BaseModel):
    """Location of a created archive."""

    identifier: str
    file: str = Field(..., description="Archive name, downloadable through /download")


class ArchiveResponse(BaseModel):
    """Response of an archive request."""

    result: ArchiveData


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
