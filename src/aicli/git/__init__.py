"""Git repository access."""

from aicli.git.repository import GitError, GitRepository, GitStatus, NO_CHANGES_MESSAGE

__all__ = ["GitError", "GitRepository", "GitStatus", "NO_CHANGES_MESSAGE"]
