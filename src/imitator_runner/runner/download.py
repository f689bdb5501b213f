"""Safe resolution of downloadable job files."""
import asyncio
from pathlib import Path
from typing import Optional
from imitator_runner.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from imitator_runner.runner.storage import is_safe_segment, workspace_path


class DownloadGateway:
    """
    Maps (identifier, prefix, filename) to a file under the storage root.

    Every part must be a single path segment and the resolved path must stay
    under the root, so neither '..' nor symlinks can reach other files.
    """

    def __init__(self, root: Path):
        self.root = root.resolve()

    async def resolve(
        self,
        identifier: Optional[str],
        filename: Optional[str],
        prefix: Optional[str] = None,
    ) -> Path:
        """
        Resolve a requested file.

        Args:
            identifier: Job identifier
            filename: File name inside the workspace or the model's output directory
            prefix: Model prefix for files generated by the tool

        Returns:
            Path: Absolute path of an existing regular file

        Raises:
            ValidationError: If identifier or filename is missing
            ForbiddenError: If a part is not a single segment or escapes the root
            NotFoundError: If the file does not exist
        """
        if not filename:
            raise ValidationError("filename is required")
        if not identifier:
            raise ValidationError("identifier is required")

        parts = [identifier] if prefix is None else [identifier, prefix]
        parts.append(filename)
        if not all(is_safe_segment(part) for part in parts):
            raise ForbiddenError("Invalid file path")

        candidate = workspace_path(self.root, identifier).joinpath(*parts[1:])
        path = await asyncio.to_thread(candidate.resolve)
        if self.root not in path.parents:
            raise ForbiddenError("Invalid file path")

        if not await asyncio.to_thread(path.is_file):
            raise NotFoundError("File not found")
        return path
