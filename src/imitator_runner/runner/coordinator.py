"""Job coordinator: validates a run request and fans it out per model."""
import asyncio
import logging
import math
import uuid
from pathlib import Path
from typing import List, Optional, Sequence
from imitator_runner.config import Settings
from imitator_runner.core.enums import ExecutionStatus, FailurePolicy
from imitator_runner.core.exceptions import FileSystemError, JobError, ValidationError
from imitator_runner.observability.metrics import record_job_finished, record_job_started
from imitator_runner.runner.aggregator import OutputAggregator
from imitator_runner.runner.file_store import LocalFileStore
from imitator_runner.runner.model_runner import ModelRunner
from imitator_runner.runner.models import ExecutionResult, FileCandidate, Job, JobResult, ModelFile
from imitator_runner.runner.options import prepare_options
from imitator_runner.runner.storage import create_workspace, prefix_for, sanitize_name, storage_root
from imitator_runner.streaming.sink import OutputChannel, OutputSink

logger = logging.getLogger(__name__)


def unique_prefixes(filenames: Sequence[str]) -> List[str]:
    """
    Derive one prefix per model, distinct within the job.

    Repeated prefixes get ``_2``, ``_3``, ... appended in submission order.
    """
    taken = set()
    prefixes = []
    for filename in filenames:
        base = prefix_for(filename)
        prefix = base
        counter = 2
        while prefix in taken:
            prefix = f"{base}_{counter}"
            counter += 1
        taken.add(prefix)
        prefixes.append(prefix)
    return prefixes


class JobCoordinator:
    """
    Orchestrates one run request from upload to aggregated result.

    Each job gets a fresh identifier and its own workspace. Models run in
    parallel, at most ``max_concurrent_models`` at a time.
    """

    def __init__(
        self,
        settings: Settings,
        sink: OutputSink,
        runner: Optional[ModelRunner] = None,
        file_store: Optional[LocalFileStore] = None,
        aggregator: Optional[OutputAggregator] = None,
    ):
        """
        Initialize job coordinator.

        Args:
            settings: Application settings
            sink: Output sink receiving live model output
            runner: Model runner (built from settings if omitted)
            file_store: Store placing uploads in the workspace
            aggregator: Assembler of the final job result
        """
        self.settings = settings
        self.sink = sink
        self.runner = runner or ModelRunner.from_settings(settings)
        self.file_store = file_store or LocalFileStore()
        self.aggregator = aggregator or OutputAggregator()
        self.root = storage_root(settings.STORAGE_ROOT)
        self.disallowed_options = {*settings.DISALLOWED_OPTIONS, settings.TOOL_OUTPUT_FLAG}
        self._semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_MODELS)

    async def run(
        self,
        models: Optional[Sequence[FileCandidate]],
        property_file: Optional[FileCandidate],
        raw_options: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobResult:
        """
        Run the tool on every model against the property.

        Args:
            models: Uploaded model files, at least one
            property_file: Uploaded property file
            raw_options: Space separated tool options from the client
            timeout: Per-model timeout in seconds
            cancel_event: Terminates every running model when set

        Returns:
            JobResult: Results in submission order

        Raises:
            ValidationError: If models or property are missing or timeout is invalid
            JobError: If a model fails and the failure policy is ABORT
            FileSystemError: If the workspace cannot be prepared
        """
        if not models or property_file is None:
            raise ValidationError("Model and property fields are required")
        effective_timeout = self.resolve_timeout(timeout)

        job = await self._prepare(models, property_file, raw_options, effective_timeout)
        logger.info(
            f"Job {job.identifier}: {len(job.models)} model(s), options {job.options}, "
            f"timeout {job.timeout}s"
        )
        record_job_started()

        try:
            results = await self._dispatch(job, cancel_event or asyncio.Event())
        except JobError:
            record_job_finished("aborted")
            raise

        job_result = self.aggregator.aggregate(job, results)
        record_job_finished("failed" if job_result.failed else "succeeded")
        logger.info(f"Job {job.identifier} finished, failed={job_result.failed}")
        return job_result

    def resolve_timeout(self, timeout: Optional[float]) -> float:
        """Apply the default and the upper bound to a requested timeout."""
        if timeout is None:
            return self.settings.DEFAULT_TIMEOUT_SECONDS
        # NaN compares false with everything; infinity falls through to the cap
        if math.isnan(timeout) or timeout <= 0:
            raise ValidationError("timeout must be a positive number of seconds")
        return min(timeout, self.settings.MAX_TIMEOUT_SECONDS)

    async def _prepare(
        self,
        models: Sequence[FileCandidate],
        property_file: FileCandidate,
        raw_options: Optional[str],
        timeout: float,
    ) -> Job:
        identifier = str(uuid.uuid4())
        try:
            workspace = await asyncio.to_thread(create_workspace, self.root, identifier)
        except OSError as e:
            logger.error(f"Could not create workspace for job {identifier}: {e}")
            raise FileSystemError("Could not create the job workspace") from e

        prefixes = unique_prefixes([m.filename for m in models])
        property_name = self._property_name(property_file.filename, prefixes)
        property_path, = await self.file_store.place(workspace, [property_file], [property_name])

        # Each model lives in its own directory, next to the files the tool writes for it
        model_paths = []
        for prefix, model in zip(prefixes, models):
            name = prefix + Path(sanitize_name(model.filename)).suffix
            stored, = await self.file_store.place(workspace / prefix, [model], [name])
            model_paths.append(stored)

        return Job(
            identifier=identifier,
            workspace=workspace,
            property_name=property_file.filename,
            property_path=property_path,
            models=[
                ModelFile(original_name=m.filename, stored_path=path, prefix=prefix)
                for m, path, prefix in zip(models, model_paths, prefixes)
            ],
            options=prepare_options(raw_options, self.disallowed_options),
            timeout=timeout,
        )

    def _property_name(self, filename: str, taken: Sequence[str]) -> str:
        """Stored property name, distinct from model directories and the archive."""
        name = sanitize_name(filename, default="property")
        reserved = {*taken, self.settings.ARCHIVE_NAME}
        while name in reserved:
            name = f"property_{name}"
        return name

    async def _dispatch(self, job: Job, cancel_event: asyncio.Event) -> List[ExecutionResult]:
        # Channels open before any model waits for a slot so subscribers can attach
        channels = [self.sink.channel(job.identifier, model.prefix) for model in job.models]
        tasks = [
            asyncio.create_task(self._run_model(job, model, channel, cancel_event))
            for model, channel in zip(job.models, channels)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except (Exception, asyncio.CancelledError):
            # Stop the remaining models before surfacing the failure
            cancel_event.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self._close_channels(channels)
            raise

    async def _close_channels(self, channels: List[OutputChannel]) -> None:
        # Tasks cancelled while queued never reached the runner
        for channel in channels:
            try:
                await channel.close(ExecutionStatus.CANCELLED)
            except Exception as e:
                logger.warning(f"Could not close output stream of {channel.prefix}: {e}")

    async def _run_model(
        self, job: Job, model: ModelFile, channel: OutputChannel, cancel_event: asyncio.Event
    ) -> ExecutionResult:
        async with self._semaphore:
            if cancel_event.is_set():
                # Cancelled while waiting for a free slot
                result = await self.runner.skip(model, channel)
            else:
                result = await self.runner.execute(
                    model,
                    job.property_path,
                    job.options,
                    job.workspace,
                    channel,
                    job.timeout,
                    cancel_event,
                )

        if not result.success and self.settings.FAILURE_POLICY == FailurePolicy.ABORT:
            raise JobError(
                f"Model '{model.original_name}' failed: {result.error_message or result.status}",
                prefix=model.prefix,
            )
        return result
