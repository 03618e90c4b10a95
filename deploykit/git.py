"""
Git helper utilities for deploykit.

Every operation takes the repository root explicitly; nothing here changes
the process working directory.
"""

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from deploykit.exceptions import CommandError
from deploykit.logging import get_logger, mask_sensitive_data

logger = get_logger("git")

# Tolerate whitespace drift between the remote's tree and the repository
_WHITESPACE_FLAGS = ["--ignore-space-change", "--ignore-whitespace"]


@dataclass
class CommandResult:
    """Outcome of an external command."""

    args: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs external commands with `subprocess`."""

    def run(
        self,
        args: Sequence[str],
        cwd: str | Path,
        check: bool = True,
        stream: bool = False,
    ) -> CommandResult:
        """
        Run a command in a directory.

        Args:
            args: Command and arguments
            cwd: Working directory for the command
            check: Raise CommandError on a non-zero exit code
            stream: Log the command's stdout lines at INFO

        Returns:
            CommandResult

        Raises:
            CommandError: If check is set and the command failed, or if the
                command could not be started at all
        """
        args = list(args)
        logger.debug("$ %s (in %s)", mask_sensitive_data(" ".join(args)), cwd)

        try:
            completed = subprocess.run(
                args,
                cwd=cwd,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            # Missing executable or working directory
            raise CommandError([mask_sensitive_data(a) for a in args], -1, str(e)) from e

        result = CommandResult(
            args=args,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

        if stream:
            for line in result.stdout.splitlines():
                logger.info(mask_sensitive_data(line))

        if check and not result.ok:
            raise CommandError(
                [mask_sensitive_data(a) for a in args],
                result.exit_code,
                mask_sensitive_data(result.stderr),
            )
        return result


class GitHelper:
    """
    Git operations used by failure recovery.

    Example:
        ```python
        git = GitHelper()
        git.clone("https://github.com/owner/repo.git", Path("/tmp/ws/repo"), branch="main")
        git.checkout(Path("/tmp/ws/repo"), "umbcloud/1234")
        ```
    """

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    def _git(self, root: Path, *args: str, check: bool = True, stream: bool = False) -> CommandResult:
        return self.runner.run(["git", *args], cwd=root, check=check, stream=stream)

    def clone(
        self,
        clone_url: str,
        local_path: str | Path,
        branch: str | None = None,
        depth: int | None = None,
    ) -> None:
        """
        Clone a repository to a local path.

        Args:
            clone_url: The repository clone URL (may embed credentials)
            local_path: Directory to clone into; its parent must exist
            branch: Optional branch to check out
            depth: Optional shallow clone depth

        Raises:
            CommandError: If git clone fails
        """
        local_path = Path(local_path)

        cmd = ["clone"]
        if depth is not None:
            cmd.extend(["--depth", str(depth)])
        if branch is not None:
            cmd.extend(["--branch", branch])
        cmd.extend([clone_url, str(local_path)])

        self._git(local_path.parent, *cmd)

    def status_porcelain(self, root: Path) -> str:
        """Return `git status --porcelain` output."""
        return self._git(root, "status", "--porcelain").stdout

    def ensure_clean(self, root: Path) -> None:
        """Reset and clean the working tree if it has any changes."""
        if self.status_porcelain(root).strip():
            logger.info("Working directory is not clean. Resetting...")
            self._git(root, "reset", "--hard", "HEAD")
            self._git(root, "clean", "-fd")
            logger.info("Working directory reset complete")
        else:
            logger.info("Working directory is already clean")

    def fetch(self, root: Path, remote: str = "origin") -> None:
        self._git(root, "fetch", remote)

    def checkout(self, root: Path, branch: str) -> None:
        self._git(root, "checkout", branch)

    def apply_patch(self, root: Path, patch_path: Path, reject: bool = False) -> CommandResult:
        """
        Apply a patch file to the working tree.

        Args:
            root: Repository root
            patch_path: Path of the unified diff
            reject: Write unmergeable hunks to sibling .rej files instead of failing

        Returns:
            CommandResult (never raises for a non-zero exit code)
        """
        cmd = ["apply"]
        if reject:
            cmd.append("--reject")
        cmd.extend(_WHITESPACE_FLAGS)
        cmd.append(str(patch_path))
        return self._git(root, *cmd, check=False, stream=True)

    def add_all(self, root: Path) -> None:
        self._git(root, "add", "--all")

    def has_staged_changes(self, root: Path) -> bool:
        """True if the index differs from HEAD."""
        return self._git(root, "diff", "--cached", "--quiet", check=False).exit_code != 0

    def commit(self, root: Path, message: str, author_name: str, author_email: str) -> None:
        """Commit the index as the given author."""
        self._git(
            root,
            "-c",
            f"user.name={author_name}",
            "-c",
            f"user.email={author_email}",
            "commit",
            "-m",
            message,
        )

    def push(self, root: Path, branch: str, remote: str = "origin") -> None:
        self._git(root, "push", remote, branch, stream=True)
