"""Tests for the read-only git wrapper."""

import pytest

from aicli.git import NO_CHANGES_MESSAGE, GitError, GitRepository


@pytest.fixture
def repo(git_repo):
    return GitRepository(git_repo)


class TestRepositoryDetection:
    """Test repository detection."""

    def test_is_repository(self, repo):
        assert repo.is_repository() is True

    def test_not_a_repository(self, tmp_path):
        outside = tmp_path / "plain"
        outside.mkdir()

        assert GitRepository(outside).is_repository() is False

    def test_detected_from_subdirectory(self, git_repo):
        nested = git_repo / "src"
        nested.mkdir()

        assert GitRepository(nested).is_repository() is True

    def test_current_branch(self, repo):
        assert repo.current_branch() == "main"

    def test_detached_head(self, repo, git, git_repo):
        git(git_repo, "checkout", "-q", "--detach")

        with pytest.raises(GitError, match="detached HEAD"):
            repo.current_branch()
        assert repo.status().branch == "(detached)"


class TestDiffs:
    """Test diff collection."""

    def test_staged_diff(self, repo, git, git_repo):
        (git_repo / "app.py").write_text("print('hi')\n")
        git(git_repo, "add", "app.py")

        diff = repo.staged_diff()

        assert "diff --git a/app.py b/app.py" in diff
        assert "+print('hi')" in diff
        assert repo.staged_files() == ["app.py"]

    def test_nothing_staged(self, repo, git_repo):
        (git_repo / "README.md").write_text("# Changed\n")

        with pytest.raises(GitError, match=NO_CHANGES_MESSAGE):
            repo.staged_diff()

    def test_commit_diff(self, repo, git, git_repo):
        (git_repo / "lib.py").write_text("X = 1\n")
        git(git_repo, "add", "lib.py")
        git(git_repo, "commit", "-q", "-m", "feat: add lib")
        sha = git(git_repo, "rev-parse", "HEAD").strip()

        diff = repo.commit_diff(sha[:8])

        assert "+X = 1" in diff
        assert "feat: add lib" not in diff

    def test_root_commit_diff(self, repo):
        assert "+# Demo" in repo.commit_diff("HEAD")

    @pytest.mark.parametrize("revision", ["deadbeef", "not-a-ref", "HEAD~5"])
    def test_invalid_commit(self, repo, revision):
        with pytest.raises(GitError, match=f"Invalid commit hash: {revision}"):
            repo.commit_diff(revision)


class TestStatus:
    """Test working tree status."""

    def test_clean(self, repo):
        status = repo.status()

        assert status.branch == "main"
        assert status.is_clean is True

    def test_counts(self, repo, git, git_repo):
        (git_repo / "new.txt").write_text("new\n")
        (git_repo / "staged.txt").write_text("staged\n")
        git(git_repo, "add", "staged.txt")
        (git_repo / "README.md").write_text("# Changed\n")

        status = repo.status()

        assert status.staged == 1
        assert status.modified == 1
        assert status.untracked == 1
        assert status.is_clean is False
