"""Placement of uploaded files into job workspaces."""
import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional, Sequence
from imitator_runner.core.exceptions import FileSystemError
from imitator_runner.runner.models import FileCandidate
from imitator_runner.runner.storage import is_safe_segment, sanitize_name

logger = logging.getLogger(__name__)


class LocalFileStore:
    """
    Copies uploaded file streams into a workspace on the local disk.

    Copies run in a worker thread so the event loop is not blocked by
    large uploads.
    """

    async def place(
        self,
        workspace: Path,
        files: Sequence[FileCandidate],
        names: Optional[Sequence[str]] = None,
    ) -> List[Path]:
        """
        Store files in the workspace.

        Args:
            workspace: Target directory inside a job workspace, created if missing
            files: Uploaded files to store
            names: Stored names, one per file (sanitized original names if omitted)

        Returns:
            List[Path]: Stored paths in the order of ``files``

        Raises:
            FileSystemError: If a name is unsafe or a copy fails
        """
        if names is None:
            names = [sanitize_name(f.filename) for f in files]
        if len(names) != len(files):
            raise ValueError("Exactly one stored name is required per file")

        try:
            await asyncio.to_thread(workspace.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create {workspace}: {e}")
            raise FileSystemError("Could not prepare the job workspace") from e

        stored = []
        for candidate, name in zip(files, names):
            if not is_safe_segment(name):
                raise FileSystemError(f"Invalid stored filename: {name!r}")
            target = workspace / name
            await asyncio.to_thread(self._copy, candidate, target)
            logger.debug(f"Stored {candidate.filename} as {target}")
            stored.append(target)
        return stored

    @staticmethod
    def _copy(candidate: FileCandidate, target: Path) -> None:
        try:
            with open(target, "xb") as out:
                shutil.copyfileobj(candidate.stream, out)
        except OSError as e:
            logger.error(f"Failed to store {candidate.filename}: {e}")
            raise FileSystemError(f"Could not store file '{candidate.filename}'") from e
