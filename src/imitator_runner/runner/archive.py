"""Bundling of generated files into one downloadable archive."""
import asyncio
import logging
import zipfile
from pathlib import Path
from typing import Sequence
from imitator_runner.core.exceptions import FileSystemError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


class ArchiveBuilder:
    """Zips files of a job workspace into a single archive."""

    def __init__(self, archive_name: str = "outputs.zip"):
        self.archive_name = archive_name

    async def bundle(self, workspace: Path, files: Sequence[str]) -> Path:
        """
        Create the archive inside the workspace.

        Args:
            workspace: Job workspace
            files: Paths relative to the workspace

        Returns:
            Path: Path of the written archive

        Raises:
            ForbiddenError: If a file resolves outside the workspace
            NotFoundError: If a file does not exist
            FileSystemError: If the archive cannot be written
        """
        root = workspace.resolve()
        entries = [self._entry(root, name) for name in files]
        target = root / self.archive_name
        await asyncio.to_thread(self._write, target, entries)
        logger.info(f"Archived {len(entries)} files into {target}")
        return target

    def _entry(self, root: Path, name: str) -> Path:
        path = (root / name).resolve()
        if root not in path.parents:
            raise ForbiddenError(f"File '{name}' is outside the job workspace")
        if path.name == self.archive_name and path.parent == root:
            raise ForbiddenError("The archive cannot contain itself")
        if not path.is_file():
            raise NotFoundError(f"File '{name}' not found")
        return path

    @staticmethod
    def _write(target: Path, entries: Sequence[Path]) -> None:
        root = target.parent
        partial = target.with_name(target.name + ".part")
        try:
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for path in entries:
                    archive.write(path, arcname=path.relative_to(root).as_posix())
            partial.replace(target)
        except OSError as e:
            logger.error(f"Failed to write archive {target}: {e}")
            partial.unlink(missing_ok=True)
            raise FileSystemError("Could not create the archive") from e
