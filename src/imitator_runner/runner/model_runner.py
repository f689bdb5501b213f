"""Runs the verification tool on a single model."""
import asyncio
import codecs
import logging
import shlex
import time
from pathlib import Path
from typing import List, Optional, Sequence
from imitator_runner.config import Settings
from imitator_runner.core.enums import ExecutionStatus
from imitator_runner.observability.metrics import models_running, record_model_run
from imitator_runner.runner.models import ExecutionResult, ModelFile
from imitator_runner.streaming.sink import OutputChannel

logger = logging.getLogger(__name__)


class ModelRunner:
    """
    Spawns one tool process per model and supervises it.

    Output is streamed chunk by chunk to the model's channel while the
    process runs. A timeout or a cancellation event terminates the process
    (SIGTERM, then SIGKILL after a grace period).
    """

    def __init__(
        self,
        tool_command: Sequence[str],
        output_flag: str,
        kill_grace_seconds: float = 5.0,
        chunk_size: int = 4096,
    ):
        """
        Initialize model runner.

        Args:
            tool_command: Executable and fixed leading arguments of the tool
            output_flag: Flag telling the tool where to write its result files
            kill_grace_seconds: Delay between SIGTERM and SIGKILL
            chunk_size: Maximum number of bytes read from the process at once
        """
        if not tool_command:
            raise ValueError("Tool command must not be empty")
        self.tool_command = list(tool_command)
        self.output_flag = output_flag
        self.kill_grace_seconds = kill_grace_seconds
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModelRunner":
        return cls(
            tool_command=shlex.split(settings.TOOL_COMMAND),
            output_flag=settings.TOOL_OUTPUT_FLAG,
            kill_grace_seconds=settings.KILL_GRACE_SECONDS,
            chunk_size=settings.OUTPUT_CHUNK_SIZE,
        )

    def build_command(
        self,
        model_path: Path,
        property_path: Path,
        options: Sequence[str],
        output_prefix: Path,
    ) -> List[str]:
        """Build the tool invocation for one model."""
        return [
            *self.tool_command,
            str(model_path),
            str(property_path),
            *options,
            self.output_flag,
            str(output_prefix),
        ]

    async def execute(
        self,
        model: ModelFile,
        property_path: Path,
        options: Sequence[str],
        workspace: Path,
        channel: OutputChannel,
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        """
        Run the tool on a model and wait for the outcome.

        Args:
            model: Model placed in the workspace
            property_path: Property file shared by all models of the job
            options: Filtered client options
            workspace: Job workspace; output goes to ``workspace/<prefix>/``
            channel: Output stream of this model
            timeout: Seconds before the process is terminated (None for no limit)
            cancel_event: Terminates the process when set

        Returns:
            ExecutionResult: Finalized result
        """
        result = ExecutionResult(prefix=model.prefix)
        started = time.monotonic()
        output_dir = workspace / model.prefix

        try:
            await asyncio.to_thread(output_dir.mkdir, exist_ok=True)
            command = self.build_command(
                model.stored_path, property_path, options, output_dir / model.prefix
            )
            logger.info(f"Starting {model.prefix}: {shlex.join(command)}")
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(output_dir),
            )
        except OSError as e:
            logger.error(f"Could not start tool for {model.prefix}: {e}")
            return await self._finish(
                result,
                channel,
                ExecutionStatus.SPAWN_FAILED,
                started,
                error_message="Could not start the verification tool",
            )

        models_running.inc()
        try:
            status = await self._supervise(process, result, channel, timeout, cancel_event)
        except asyncio.CancelledError:
            await self._finish(
                result,
                channel,
                ExecutionStatus.CANCELLED,
                started,
                exit_code=process.returncode,
                error_message="Execution cancelled",
            )
            raise
        finally:
            models_running.dec()

        generated = await asyncio.to_thread(
            self._collect_generated, output_dir, model.stored_path.name
        )
        return await self._finish(
            result,
            channel,
            status,
            started,
            exit_code=process.returncode,
            generated_files=generated,
            error_message=self._describe(status, process.returncode, timeout),
        )

    async def skip(self, model: ModelFile, channel: OutputChannel) -> ExecutionResult:
        """Finalize a model that was cancelled before its process started."""
        return await self._finish(
            ExecutionResult(prefix=model.prefix),
            channel,
            ExecutionStatus.CANCELLED,
            time.monotonic(),
            error_message="Execution cancelled",
        )

    async def _supervise(
        self,
        process: asyncio.subprocess.Process,
        result: ExecutionResult,
        channel: OutputChannel,
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> ExecutionStatus:
        """Race the process against the timeout and the cancel event."""
        communicate = asyncio.create_task(self._communicate(process, result, channel))
        waiters = {communicate}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.create_task(cancel_event.wait())
            waiters.add(cancelled)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if communicate in done:
                returncode = communicate.result()
                if returncode == 0:
                    return ExecutionStatus.SUCCESS
                return ExecutionStatus.NON_ZERO_EXIT

            if cancelled is not None and cancelled in done:
                logger.warning(f"Cancelling {result.prefix} (pid {process.pid})")
                status = ExecutionStatus.CANCELLED
            else:
                logger.warning(f"{result.prefix} timed out after {timeout}s (pid {process.pid})")
                status = ExecutionStatus.TIMED_OUT

            await self._terminate(process)
            await self._drain(communicate)
            return status

        except (Exception, asyncio.CancelledError):
            await self._terminate(process)
            communicate.cancel()
            raise

        finally:
            if cancelled is not None:
                cancelled.cancel()

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        result: ExecutionResult,
        channel: OutputChannel,
    ) -> int:
        """Forward output until EOF, then wait for the exit code."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await process.stdout.read(self.chunk_size)
            text = decoder.decode(data, final=not data)
            if text:
                result.output += text
                await self._forward(channel, text)
            if not data:
                break
        return await process.wait()

    async def _forward(self, channel: OutputChannel, text: str) -> None:
        # The run must go on when subscribers are unreachable
        try:
            await channel.write(text)
        except Exception as e:
            logger.warning(f"Could not stream output of {channel.prefix}: {e}")

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the process, killing it if it ignores SIGTERM."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} ignored SIGTERM, killing")
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _drain(self, communicate: asyncio.Task) -> None:
        """Give the reader a grace period to collect the remaining output."""
        done, _ = await asyncio.wait({communicate}, timeout=self.kill_grace_seconds)
        if not done:
            # A child of the tool still holds the pipe open
            communicate.cancel()
            await asyncio.wait({communicate})

    async def _finish(
        self,
        result: ExecutionResult,
        channel: OutputChannel,
        status: ExecutionStatus,
        started: float,
        exit_code: Optional[int] = None,
        generated_files: Optional[List[str]] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionResult:
        duration = time.monotonic() - started
        result.finalize(
            status,
            duration,
            exit_code=exit_code,
            generated_files=generated_files,
            error_message=error_message,
        )
        record_model_run(status, duration)
        try:
            await channel.close(status)
        except Exception as e:
            logger.warning(f"Could not close output stream of {result.prefix}: {e}")

        logger.info(f"{result.prefix} finished with {status} in {duration:.2f}s")
        return result

    @staticmethod
    def _collect_generated(output_dir: Path, model_name: str) -> List[str]:
        """List the regular files the tool wrote next to the model."""
        try:
            return sorted(
                p.name for p in output_dir.iterdir() if p.is_file() and p.name != model_name
            )
        except OSError as e:
            logger.warning(f"Could not list generated files in {output_dir}: {e}")
            return []

    @staticmethod
    def _describe(status: ExecutionStatus, returncode: Optional[int], timeout: Optional[float]) -> Optional[str]:
        if status == ExecutionStatus.TIMED_OUT:
            return f"Execution timed out after {timeout} seconds"
        if status == ExecutionStatus.CANCELLED:
            return "Execution cancelled"
        if status == ExecutionStatus.NON_ZERO_EXIT:
            return f"Tool exited with code {returncode}"
        return None
