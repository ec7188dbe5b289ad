"""Prompt construction and post-processing for commit messages and explanations."""

import re

CONVENTIONAL_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)

MAX_SUBJECT_LENGTH = 72

COMMIT_SYSTEM_MESSAGE = (
    "You are an expert Git assistant. Generate conventional commit messages only, "
    "without any additional text or explanations."
)

EXPLAIN_SYSTEM_MESSAGE = (
    "You are an expert software engineer. Analyze code changes and provide clear, "
    "concise explanations."
)

COMMIT_PROMPT = """SYSTEM:
You are an expert-level Git assistant specialized in writing Conventional Commit messages.
Your task is to analyze the provided 'git diff' output and generate a concise, accurate, and properly formatted commit message.

RULES:
1. You MUST follow the Conventional Commits specification strictly.
2. The output MUST be only the commit message, starting with `<type>[optional scope]: <description>`.
3. Choose the correct `<type>` from: {types}.
4. The `<description>` must be lowercase, start with an imperative verb (e.g., "add", "fix", "update"), and be no more than 72 characters.
5. If the changes are significant, provide a body explaining the "what" and "why" separated by a blank line.
6. If there are breaking changes, add a `BREAKING CHANGE:` footer.
7. Consider the impact on users and other developers.
8. Be specific but concise - avoid generic messages like "update files".

TYPE GUIDELINES:
- feat: new feature for the user, not a new feature for build process
- fix: bug fix for the user, not a fix to a build script
- docs: documentation changes only
- style: formatting, missing semi colons, etc; no code logic change
- refactor: refactoring production code, eg. renaming a variable
- test: adding tests, refactoring test; no production code change
- build: changes to build system or external dependencies
- ci: changes to CI configuration files and scripts
- chore: updating deps, updating build config, etc; no production code change
{context}{extra}
Analyze the following diff of staged changes and generate only the commit message:

```diff
{diff}
```

COMMIT_MESSAGE:"""

EXPLAIN_PROMPT_DETAILED = """SYSTEM:
You are an expert software engineer tasked with explaining code changes in detail.
Analyze the provided diff and provide a comprehensive explanation including:

1. High-level summary of what changed
2. Technical details of the implementation changes
3. Reasoning behind the changes (why these changes were made)
4. Potential impact on the codebase
5. Any breaking changes or migration requirements

Provide your response in well-structured markdown with clear sections.
{context}
DIFF TO ANALYZE:
```diff
{diff}
```

EXPLANATION:"""

EXPLAIN_PROMPT_SHORT = """SYSTEM:
You are a software engineer helping developers understand code changes quickly.
Analyze the provided diff and provide a concise, clear explanation in 2-3 paragraphs covering:
- What changed (high level)
- Why it was changed
- Main impact or benefit

Keep it technical but accessible.
{context}
DIFF TO ANALYZE:
```diff
{diff}
```

EXPLANATION:"""

_CHATTER_PREFIXES = (
    "Commit message:",
    "Here's the commit message:",
    "Here is the commit message:",
    "The commit message is:",
    "COMMIT_MESSAGE:",
    "Conventional commit:",
)

_TYPE_PATTERN = re.compile(rf"^({'|'.join(CONVENTIONAL_TYPES)})(\([^)]*\))?!?:")


def _section(title: str, body: str | None) -> str:
    if not body or not body.strip():
        return ""
    return f"\n{title}:\n{body.strip()}\n"


def truncate_diff(diff: str, max_chars: int) -> str:
    """Cut a diff to ``max_chars`` characters, marking the cut."""
    if len(diff) <= max_chars:
        return diff
    return diff[:max_chars] + "\n... [diff truncated]"


def create_commit_prompt(
    diff: str,
    extra_context: str | None = None,
    context: str | None = None,
) -> str:
    """Build the commit message prompt.

    Args:
        diff: Staged diff
        extra_context: User supplied hint (``--message`` and expanded @files)
        context: Rendered context bundle

    Returns:
        str: Prompt text
    """
    return COMMIT_PROMPT.format(
        types=", ".join(f"`{t}`" for t in CONVENTIONAL_TYPES),
        context=_section("PROJECT CONTEXT", context),
        extra=_section("ADDITIONAL CONTEXT", extra_context),
        diff=diff,
    )


def create_explain_prompt(diff: str, detailed: bool = False, context: str | None = None) -> str:
    """Build the change explanation prompt.

    Args:
        diff: Diff to explain
        detailed: Ask for a sectioned, in-depth explanation
        context: Rendered context bundle

    Returns:
        str: Prompt text
    """
    template = EXPLAIN_PROMPT_DETAILED if detailed else EXPLAIN_PROMPT_SHORT
    return template.format(context=_section("PROJECT CONTEXT", context), diff=diff)


def _infer_type(message: str) -> str:
    lowered = message.lower()
    if any(word in lowered for word in ("add", "new", "implement")):
        return "feat"
    if any(word in lowered for word in ("fix", "bug", "error")):
        return "fix"
    if any(word in lowered for word in ("update", "change")):
        return "refactor"
    if "test" in lowered:
        return "test"
    if "doc" in lowered:
        return "docs"
    return "chore"


def refine_conventional_commit(message: str) -> str:
    """Normalize raw model output into a conventional commit message.

    Strips chatter prefixes, surrounding code fences and quotes, prefixes an
    inferred type when none is present and clamps the subject line to 72
    characters. The body is kept as is.

    Args:
        message: Raw model output

    Returns:
        str: Cleaned commit message
    """
    refined = message.strip()

    for prefix in _CHATTER_PREFIXES:
        if refined.lower().startswith(prefix.lower()):
            refined = refined[len(prefix):].strip()

    if refined.startswith("```"):
        lines = refined.splitlines()
        # Drop the opening fence (with any language tag) and a closing fence.
        lines = lines[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        refined = "\n".join(lines).strip()

    if len(refined) >= 2 and refined[0] == refined[-1] and refined[0] in "\"'`":
        refined = refined[1:-1].strip()

    if not refined:
        return refined

    if not _TYPE_PATTERN.match(refined):
        refined = f"{_infer_type(refined)}: {refined}"

    subject, newline, body = refined.partition("\n")
    if len(subject) > MAX_SUBJECT_LENGTH:
        subject = subject[:MAX_SUBJECT_LENGTH].rstrip()

    return subject + newline + body
