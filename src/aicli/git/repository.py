"""Read-only access to a Git repository through the ``git`` executable.

Mutating Git commands never go through this module: they are built as
argument lists and run by the CommandExecutor after the approval gate.
"""

import subprocess
from pathlib import Path

from pydantic import BaseModel, Field

from aicli.exceptions import AICliError
from aicli.logging import get_logger

logger = get_logger("aicli.git")

NO_CHANGES_MESSAGE = "No changes found to analyze."


class GitError(AICliError):
    """Raised when a git operation fails."""

    pass


class GitStatus(BaseModel):
    """Summary of the working tree."""

    branch: str = Field(..., description="Current branch, or '(detached)'")
    staged: int = Field(default=0, ge=0, description="Entries with index changes")
    modified: int = Field(default=0, ge=0, description="Tracked entries changed in the worktree")
    untracked: int = Field(default=0, ge=0, description="Untracked entries")

    @property
    def is_clean(self) -> bool:
        return self.staged == 0 and self.modified == 0 and self.untracked == 0


class GitRepository:
    """Wrapper around ``git`` for one working directory.

    Attributes:
        cwd: Directory git commands run in
    """

    def __init__(self, cwd: Path | None = None):
        self.cwd = (cwd or Path.cwd()).resolve()

    def _run_git(self, *args: str) -> str:
        """Run a git command and return stdout."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                check=True,
                encoding="utf-8",
                errors="replace",
            )
        except subprocess.CalledProcessError as e:
            raise GitError(
                f"Git command failed: git {' '.join(args)}\n{e.stderr.strip()}"
            ) from e
        except FileNotFoundError as e:
            raise GitError("Git is not installed or not in PATH") from e

        return result.stdout

    def is_repository(self) -> bool:
        """Check whether ``cwd`` is inside a git work tree."""
        try:
            return self._run_git("rev-parse", "--is-inside-work-tree").strip() == "true"
        except GitError:
            return False

    def staged_diff(self) -> str:
        """Diff of the index against HEAD (``git diff --cached``).

        Raises:
            GitError: If nothing is staged
        """
        return self._non_empty(self._run_git("diff", "--cached"))

    def commit_diff(self, commit: str) -> str:
        """Patch introduced by one commit (against its first parent).

        Args:
            commit: Commit hash or revision

        Raises:
            GitError: If the revision is not a commit or has no changes
        """
        try:
            sha = self._run_git("rev-parse", "--verify", "--quiet", f"{commit}^{{commit}}").strip()
        except GitError as e:
            raise GitError(f"Invalid commit hash: {commit}") from e

        return self._non_empty(
            self._run_git("show", "--format=", "--patch", "--first-parent", sha)
        )

    def staged_files(self) -> list[str]:
        """Paths with staged changes."""
        output = self._run_git("diff", "--cached", "--name-only")
        return [line for line in output.splitlines() if line]

    def current_branch(self) -> str:
        """Name of the checked out branch.

        Raises:
            GitError: On a detached HEAD
        """
        try:
            return self._run_git("symbolic-ref", "--short", "-q", "HEAD").strip()
        except GitError as e:
            raise GitError("Not on any branch (detached HEAD)") from e

    def status(self) -> GitStatus:
        """Count staged, modified and untracked entries."""
        output = self._run_git("status", "--porcelain=v1")

        staged = modified = untracked = 0
        for line in output.splitlines():
            if len(line) < 2:
                continue
            index, worktree = line[0], line[1]
            if index == "?" and worktree == "?":
                untracked += 1
                continue
            if index not in (" ", "?", "!"):
                staged += 1
            if worktree in "MDRT":
                modified += 1

        try:
            branch = self.current_branch()
        except GitError:
            branch = "(detached)"

        return GitStatus(branch=branch, staged=staged, modified=modified, untracked=untracked)

    def _non_empty(self, diff: str) -> str:
        if not diff.strip():
            raise GitError(NO_CHANGES_MESSAGE)
        logger.debug("Collected diff", cwd=str(self.cwd), chars=len(diff))
        return diff
