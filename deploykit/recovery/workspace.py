"""Scoped scratch directories for recovery."""

import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from deploykit.exceptions import RecoveryError
from deploykit.logging import get_logger

logger = get_logger("recovery")


@contextmanager
def scoped_workspace(prefix: str = "pr-workspace-", parent: str | Path | None = None) -> Iterator[Path]:
    """
    Create a temporary directory and remove it when the block exits.

    Removal failures are logged as warnings and never replace an exception
    raised inside the block.

    Args:
        prefix: Directory name prefix
        parent: Directory to create it in (default: the system temp dir)

    Yields:
        Path of the new directory

    Raises:
        RecoveryError: If the directory cannot be created
    """
    try:
        if parent is not None:
            Path(parent).mkdir(parents=True, exist_ok=True)
        root = Path(tempfile.mkdtemp(prefix=prefix, dir=parent))
    except OSError as e:
        raise RecoveryError(f"Could not create a workspace: {e}") from e
    try:
        yield root
    finally:
        try:
            shutil.rmtree(root)
            logger.info("Cleaned up workspace: %s", root)
        except OSError as e:
            logger.warning("Failed to clean up workspace %s: %s", root, e)


def remove_file(path: Path) -> None:
    """Delete a file if it exists; failures are logged as warnings."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)
