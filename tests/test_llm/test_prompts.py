"""Tests for prompt construction and commit message refinement."""

import pytest

from aicli.llm.prompts import (
    MAX_SUBJECT_LENGTH,
    create_commit_prompt,
    create_explain_prompt,
    refine_conventional_commit,
    truncate_diff,
)

DIFF = "diff --git a/app.py b/app.py\n+print('hello')\n"


class TestCommitPrompt:
    """Test create_commit_prompt."""

    def test_contains_diff_and_types(self):
        prompt = create_commit_prompt(DIFF)

        assert DIFF in prompt
        assert "`feat`" in prompt
        assert "`revert`" in prompt
        assert prompt.endswith("COMMIT_MESSAGE:")

    def test_optional_sections_omitted(self):
        prompt = create_commit_prompt(DIFF)

        assert "PROJECT CONTEXT:" not in prompt
        assert "ADDITIONAL CONTEXT:" not in prompt

    def test_context_precedes_extra(self):
        prompt = create_commit_prompt(DIFF, extra_context="closes #12", context="Scopes: api")

        assert "PROJECT CONTEXT:\nScopes: api" in prompt
        assert "ADDITIONAL CONTEXT:\ncloses #12" in prompt
        assert prompt.index("PROJECT CONTEXT") < prompt.index("ADDITIONAL CONTEXT") < prompt.index(DIFF)

    def test_blank_context_ignored(self):
        assert "PROJECT CONTEXT" not in create_commit_prompt(DIFF, context="   \n")


class TestExplainPrompt:
    """Test create_explain_prompt."""

    def test_short(self):
        prompt = create_explain_prompt(DIFF)

        assert "2-3 paragraphs" in prompt
        assert DIFF in prompt

    def test_detailed(self):
        prompt = create_explain_prompt(DIFF, detailed=True, context="Scopes: api")

        assert "Potential impact on the codebase" in prompt
        assert "PROJECT CONTEXT:\nScopes: api" in prompt


class TestTruncateDiff:
    """Test truncate_diff."""

    def test_short_diff_unchanged(self):
        assert truncate_diff(DIFF, 1000) == DIFF

    def test_long_diff_marked(self):
        result = truncate_diff("x" * 50, 10)

        assert result == "x" * 10 + "\n... [diff truncated]"


class TestRefineConventionalCommit:
    """Test refine_conventional_commit."""

    @pytest.mark.parametrize("raw, expected", [
        ("feat: add login", "feat: add login"),
        ("fix(api): handle timeout", "fix(api): handle timeout"),
        ("feat!: drop python 3.10", "feat!: drop python 3.10"),
        ("  docs: update readme  \n", "docs: update readme"),
    ])
    def test_valid_messages_kept(self, raw, expected):
        assert refine_conventional_commit(raw) == expected

    @pytest.mark.parametrize("raw", [
        "Commit message: feat: add login",
        "Here's the commit message: feat: add login",
        "COMMIT_MESSAGE: feat: add login",
        "```\nfeat: add login\n```",
        "```text\nfeat: add login\n```",
        '"feat: add login"',
        "`feat: add login`",
    ])
    def test_chatter_stripped(self, raw):
        assert refine_conventional_commit(raw) == "feat: add login"

    @pytest.mark.parametrize("raw, expected_type", [
        ("add user profile page", "feat"),
        ("implement caching layer", "feat"),
        ("resolve crash on startup bug", "fix"),
        ("update dependencies", "refactor"),
        ("more tests for parser", "test"),
        ("readme doc tweaks", "docs"),
        ("bump version", "chore"),
    ])
    def test_type_inferred(self, raw, expected_type):
        assert refine_conventional_commit(raw) == f"{expected_type}: {raw}"

    def test_subject_clamped_body_kept(self):
        subject = "feat: " + "a" * 100
        message = f"{subject}\n\nLonger body line that is kept " + "b" * 100

        refined = refine_conventional_commit(message)
        first, _, rest = refined.partition("\n")

        assert len(first) == MAX_SUBJECT_LENGTH
        assert rest == message.partition("\n")[2]

    @pytest.mark.parametrize("raw", ["", "   ", "```\n```", '""'])
    def test_empty_output(self, raw):
        assert refine_conventional_commit(raw) == ""
