"""CLI entry point for running a job without the HTTP server."""
import argparse
import asyncio
import json
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, TextIO
from imitator_runner.config import get_settings
from imitator_runner.core.enums import ExecutionStatus
from imitator_runner.core.exceptions import ImitatorRunnerException
from imitator_runner.runner.archive import ArchiveBuilder
from imitator_runner.runner.coordinator import JobCoordinator
from imitator_runner.runner.models import FileCandidate, JobResult
from imitator_runner.streaming.sink import OutputSink, StreamMessage

logger = logging.getLogger(__name__)


class ConsoleSink(OutputSink):
    """
    Prints model output line by line, each line tagged with its prefix.

    Partial lines are held back until their newline arrives so output of
    concurrent models does not interleave mid-line.
    """

    def __init__(self, stream: TextIO = sys.stderr):
        self.stream = stream
        self._pending: Dict[str, str] = {}

    async def publish(self, identifier: str, prefix: str, data: str) -> None:
        buffered = self._pending.pop(prefix, "") + data
        *lines, rest = buffered.split("\n")
        for line in lines:
            self._emit(prefix, line)
        if rest:
            self._pending[prefix] = rest

    async def close(self, identifier: str, prefix: str, status: ExecutionStatus) -> None:
        rest = self._pending.pop(prefix, "")
        if rest:
            self._emit(prefix, rest)
        self._emit(prefix, f"-- finished: {status}")

    async def subscribe(self, identifier: str, prefix: str) -> AsyncIterator[StreamMessage]:
        raise NotImplementedError("The console sink has no subscribers")
        yield  # pragma: no cover

    def _emit(self, prefix: str, line: str) -> None:
        self.stream.write(f"[{prefix}] {line}\n")
        self.stream.flush()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="imitator-run",
        description="Run the verification tool on one or more models against a property.",
    )
    parser.add_argument("models", nargs="+", type=Path, help="model files")
    parser.add_argument("-p", "--property", required=True, type=Path, help="property file")
    parser.add_argument("-o", "--options", default="", help="tool options, space separated")
    parser.add_argument("-t", "--timeout", type=float, default=None, help="per-model timeout in seconds")
    parser.add_argument("--archive", action="store_true", help="zip generated files after the run")
    return parser.parse_args(argv)


async def run_job(args: argparse.Namespace) -> JobResult:
    """
    Run one job from local files.

    Args:
        args: Parsed command line arguments

    Returns:
        JobResult: Aggregated result
    """
    settings = get_settings()
    coordinator = JobCoordinator(settings, ConsoleSink())

    with ExitStack() as stack:
        models = [
            FileCandidate(path.name, stack.enter_context(open(path, "rb")))
            for path in args.models
        ]
        property_file = FileCandidate(
            args.property.name, stack.enter_context(open(args.property, "rb"))
        )
        result = await coordinator.run(models, property_file, args.options, args.timeout)

    if args.archive:
        workspace = coordinator.root / result.identifier
        builder = ArchiveBuilder(archive_name=settings.ARCHIVE_NAME)
        archive = await builder.bundle(workspace, result.generated_paths())
        logger.info(f"Archive written to {archive}")
    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = parse_args(argv)

    try:
        result = asyncio.run(run_job(args))
    except KeyboardInterrupt:
        logger.info("Run interrupted")
        return 130
    except (ImitatorRunnerException, OSError) as e:
        logger.error(f"Run failed: {e}")
        return 2

    summary = {
        "identifier": result.identifier,
        "options": result.options,
        "models": result.models,
        "property": result.property_name,
        "failed": result.failed,
        "outputs": [output.to_dict() for output in result.outputs],
    }
    json.dump(summary, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
