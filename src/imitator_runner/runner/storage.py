"""Workspace layout helpers."""
import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def storage_root(root: str) -> Path:
    return Path(root).resolve()


def workspace_path(root: Path, identifier: str) -> Path:
    """Workspace of a job; depends on the identifier only."""
    return root / identifier


def create_workspace(root: Path, identifier: str) -> Path:
    """
    Create the workspace directory of a new job.

    Raises:
        FileExistsError: If the workspace already exists
    """
    root.mkdir(parents=True, exist_ok=True)
    path = workspace_path(root, identifier)
    path.mkdir(exist_ok=False)
    return path


def is_safe_segment(value: str) -> bool:
    """
    Check that a value is usable as a single path segment.

    Rejects empty values, '.', '..', and anything with a separator or NUL.
    """
    if not value or value in (".", ".."):
        return False
    return not any(char in value for char in ("/", "\\", "\x00"))


def sanitize_name(filename: str, default: str = "file") -> str:
    """Reduce an uploaded filename to a safe basename."""
    # Browsers may send a full client side path
    basename = re.split(r"[\\/]", filename or "")[-1]
    cleaned = _UNSAFE_CHARS.sub("_", basename).lstrip(".")
    return cleaned or default


def prefix_for(filename: str) -> str:
    """Derive the display/key prefix of a model from its original name."""
    stem = Path(sanitize_name(filename, default="model")).stem
    return stem or "model"
