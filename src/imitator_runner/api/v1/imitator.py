"""Imitator API endpoints: run, download, archive and job history."""
import asyncio
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.orm import Session
from imitator_runner.api.deps import (
    get_archive_builder,
    get_coordinator,
    get_db,
    get_download_gateway,
)
from imitator_runner.api.schemas.run import (
    ArchiveData,
    ArchiveRequest,
    ArchiveResponse,
    DownloadRequest,
    ErrorResponse,
    JobListResponse,
    JobResultSchema,
    RunResponse,
)
from imitator_runner.config import get_settings
from imitator_runner.core.exceptions import (
    ForbiddenError,
    ImitatorRunnerException,
    ValidationError,
)
from imitator_runner.repositories.job_repository import JobRepository
from imitator_runner.runner.archive import ArchiveBuilder
from imitator_runner.runner.coordinator import JobCoordinator
from imitator_runner.runner.download import DownloadGateway
from imitator_runner.runner.models import FileCandidate
from imitator_runner.runner.storage import is_safe_segment, storage_root, workspace_path

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


def error_response(exc: ImitatorRunnerException) -> JSONResponse:
    """Render a domain error as ``{"error": message}``."""
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


async def watch_disconnect(request: Request, cancel_event: asyncio.Event, interval: float) -> None:
    """Set the cancel event once the client goes away."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling its job")
            cancel_event.set()
            return
        await asyncio.sleep(interval)


@router.get("/")
async def welcome() -> dict:
    """Welcome message."""
    return {"message": "Imitator API"}


@router.post("/run", response_model=RunResponse, responses=ERROR_RESPONSES)
async def run_imitator(
    request: Request,
    models: Optional[List[UploadFile]] = File(default=None),
    property_file: Optional[UploadFile] = File(default=None, alias="property"),
    options: str = Form(default=""),
    timeout: Optional[float] = Form(default=None),
    coordinator: JobCoordinator = Depends(get_coordinator),
    db: Session = Depends(get_db),
):
    """
    Run the verification tool on every model against the property.

    - Streams live output per model on /stream/{identifier}/{prefix}
    - Filters options the service controls itself
    - Returns one result per model, in upload order
    """
    model_files = [FileCandidate(m.filename or "model", m.file) for m in models or []]
    property_candidate = None
    if property_file is not None:
        property_candidate = FileCandidate(property_file.filename or "property", property_file.file)

    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(
        watch_disconnect(request, cancel_event, get_settings().DISCONNECT_POLL_INTERVAL)
    )
    try:
        result = await coordinator.run(
            model_files,
            property_candidate,
            raw_options=options,
            timeout=timeout,
            cancel_event=cancel_event,
        )
    except ImitatorRunnerException as e:
        logger.warning(f"Run rejected: {e}")
        return error_response(e)
    finally:
        watcher.cancel()

    JobRepository(db).save(result)
    return RunResponse(result=JobResultSchema.from_result(result))


@router.post("/download", responses=ERROR_RESPONSES)
async def download_file(
    body: DownloadRequest,
    gateway: DownloadGateway = Depends(get_download_gateway),
):
    """
    Download a file of a job.

    Pass ``model`` with the model prefix for files generated by the tool;
    omit it for the archive and uploaded files.
    """
    try:
        path = await gateway.resolve(body.identifier, body.file, body.model)
    except ImitatorRunnerException as e:
        logger.warning(f"Download rejected: {e}")
        return error_response(e)

    return FileResponse(str(path), filename=path.name)


@router.post("/archive", response_model=ArchiveResponse, responses=ERROR_RESPONSES)
async def archive_outputs(
    body: ArchiveRequest,
    db: Session = Depends(get_db),
    builder: ArchiveBuilder = Depends(get_archive_builder),
):
    """
    Bundle every file generated by a finished job.

    The archive is then available through /download without ``model``.
    """
    try:
        if not body.identifier:
            raise ValidationError("identifier is required")
        if not is_safe_segment(body.identifier):
            raise ForbiddenError("Invalid identifier")

        record = JobRepository(db).get_or_raise(body.identifier)
        workspace = workspace_path(storage_root(get_settings().STORAGE_ROOT), record.identifier)
        archive = await builder.bundle(workspace, record.generated_paths())
    except ImitatorRunnerException as e:
        logger.warning(f"Archive rejected: {e}")
        return error_response(e)

    return ArchiveResponse(result=ArchiveData(identifier=record.identifier, file=archive.name))


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(limit: int = 50, db: Session = Depends(get_db)):
    """List the most recent jobs, newest first."""
    records = JobRepository(db).list_recent(limit=min(max(limit, 1), 500))
    return JobListResponse(result=[JobResultSchema.from_record(r) for r in records])


@router.get("/jobs/{identifier}", response_model=RunResponse, responses=ERROR_RESPONSES)
def get_job(identifier: str, db: Session = Depends(get_db)):
    """Get the stored result of a finished job."""
    try:
        record = JobRepository(db).get_or_raise(identifier)
    except ImitatorRunnerException as e:
        return error_response(e)
    return RunResponse(result=JobResultSchema.from_record(record))
