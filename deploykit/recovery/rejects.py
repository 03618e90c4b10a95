"""
Rejected-hunk collection.

`git apply --reject` leaves a `<file>.rej` next to every file with hunks it
could not apply. Discovery works on a `DirEntry` tree so it can be exercised
without a filesystem; `read_tree` builds that tree from a real directory.
"""

import json
import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Protocol

from deploykit.exceptions import RecoveryError
from deploykit.logging import get_logger

logger = get_logger("recovery")

REJECT_SUFFIX = ".rej"
DEFAULT_RETENTION_DAYS = 30


@dataclass(frozen=True)
class DirEntry:
    """A file or directory in a tree walk."""

    name: str
    is_file: bool
    children: tuple["DirEntry", ...] = ()


@dataclass(frozen=True)
class RejectedHunkFile:
    """A .rej file, relative to the working-copy root."""

    relative_path: PurePosixPath

    def resolve(self, root: Path) -> Path:
        return root.joinpath(*self.relative_path.parts)


def find_rejected_hunks(
    tree: DirEntry,
    suffix: str = REJECT_SUFFIX,
) -> list[RejectedHunkFile]:
    """
    Collect every file below `tree` whose name ends with `suffix`.

    The root entry's own name is not part of the returned paths. Results are
    in depth-first order, children sorted by name.
    """
    found: list[RejectedHunkFile] = []

    def walk(entry: DirEntry, prefix: PurePosixPath) -> None:
        for child in sorted(entry.children, key=lambda c: c.name):
            path = prefix / child.name
            if child.is_file:
                if child.name.endswith(suffix):
                    found.append(RejectedHunkFile(path))
            else:
                walk(child, path)

    walk(tree, PurePosixPath())
    return found


def read_tree(root: Path, skip: Sequence[str] = (".git",)) -> DirEntry:
    """
    Build a DirEntry tree from a directory.

    Unreadable directories are logged and treated as empty. Symlinks are not
    followed.
    """
    def build(path: Path) -> DirEntry:
        children: list[DirEntry] = []
        try:
            entries = list(path.iterdir())
        except OSError as e:
            logger.warning("Could not read directory %s: %s", path, e)
            entries = []

        for item in entries:
            if item.name in skip:
                continue
            if item.is_symlink():
                children.append(DirEntry(item.name, is_file=True))
            elif item.is_dir():
                children.append(build(item))
            elif item.is_file():
                children.append(DirEntry(item.name, is_file=True))
        return DirEntry(path.name, is_file=False, children=tuple(children))

    return build(root)


class ArtifactStore(Protocol):
    """Somewhere to keep files for later inspection."""

    def upload(
        self,
        name: str,
        files: Sequence[Path],
        root_directory: Path,
        retention_days: int,
    ) -> None:
        ...


class DirectoryArtifactStore:
    """
    ArtifactStore that copies files into `<base_dir>/<name>/`.

    Paths relative to `root_directory` are preserved. A `manifest.json`
    records the file list, retention period and expiry.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def upload(
        self,
        name: str,
        files: Sequence[Path],
        root_directory: Path,
        retention_days: int,
    ) -> None:
        """
        Copy `files` into the artifact directory and write its manifest.

        Raises:
            RecoveryError: If the artifact directory cannot be written
        """
        target = self.base_dir / name
        expires = datetime.now(timezone.utc) + timedelta(days=retention_days)

        stored: list[str] = []
        try:
            target.mkdir(parents=True, exist_ok=True)
            for file in files:
                relative = Path(file).relative_to(root_directory)
                destination = target / relative
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(file, destination)
                stored.append(relative.as_posix())

            manifest = {
                "name": name,
                "files": stored,
                "retentionDays": retention_days,
                "expiresUtc": expires.strftime("%Y-%m-%dT%H:%M:%SZ"),
            }
            (target / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        except OSError as e:
            raise RecoveryError(f"Could not store artifact {name} in {self.base_dir}: {e}") from e
        logger.info("Stored %d file(s) as artifact %s in %s", len(stored), name, target)


def collect_rejected_hunks(
    working_root: Path,
    staging_dir: Path,
    store: ArtifactStore,
    artifact_name: str,
    retention_days: int = DEFAULT_RETENTION_DAYS,
) -> list[RejectedHunkFile]:
    """
    Move every .rej file out of the working copy and upload them as one artifact.

    The files are copied to `staging_dir` (keeping relative paths), uploaded
    with a single `store.upload` call, and removed from `working_root` so
    they are never committed.

    Returns:
        The collected files (empty if there were none; then nothing is uploaded)

    Raises:
        RecoveryError: If a reject file cannot be staged or removed, or the
            store cannot keep them
    """
    logger.info("Looking for .rej files...")
    rejects = find_rejected_hunks(read_tree(working_root))
    if not rejects:
        logger.info("No .rej files found")
        return []

    logger.info("Found %d .rej files to collect as artifacts", len(rejects))

    staged: list[Path] = []
    try:
        for reject in rejects:
            source = reject.resolve(working_root)
            destination = reject.resolve(staging_dir)
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
            staged.append(destination)
    except OSError as e:
        raise RecoveryError(f"Could not stage reject files: {e}") from e

    store.upload(artifact_name, staged, staging_dir, retention_days)
    logger.info("Uploaded %d reject files as artifact: %s", len(staged), artifact_name)

    for reject in rejects:
        try:
            reject.resolve(working_root).unlink()
        except OSError as e:
            # A .rej left in the tree would be committed
            raise RecoveryError(f"Could not remove reject file {reject.relative_path}: {e}") from e
        logger.info("Collected reject file: %s", reject.relative_path)

    return rejects
