"""Hierarchical context resolution for AI prompts.

Context documents are plain text (usually Markdown) found at three scopes:

- Global: ``~/.ai-cli/CONFIG.md``
- Project: ``PROJECT.md`` at the project root (nearest ancestor holding a
  project marker such as ``.git``)
- Directory: ``PROJECT.md`` in each directory below the project root down to
  the working directory

The resolver concatenates whatever exists in that order. Later documents are
more specific; interpreting conflicts is left to the prompt.
"""

import re
from enum import Enum
from pathlib import Path
from typing import Iterator, Protocol

from pydantic import BaseModel, ConfigDict, Field

from aicli.exceptions import ConfigError
from aicli.logging import Timer, get_logger

logger = get_logger("aicli.context")


class ConfigScope(str, Enum):
    """Scope of a context document, in ascending specificity."""

    GLOBAL = "Global"
    PROJECT = "Project"
    DIRECTORY = "Directory"


class ConfigDocument(BaseModel):
    """A loaded context document."""

    model_config = ConfigDict(frozen=True)

    scope: ConfigScope = Field(..., description="Where the document applies")
    path: Path = Field(..., description="File the content was read from")
    content: str = Field(..., description="Raw document text")


class ContextBundle(BaseModel):
    """Ordered context documents for one invocation."""

    model_config = ConfigDict(frozen=True)

    documents: tuple[ConfigDocument, ...] = Field(default=())
    project_root: Path | None = Field(default=None)

    def __iter__(self) -> Iterator[ConfigDocument]:  # type: ignore[override]
        return iter(self.documents)

    def __len__(self) -> int:
        return len(self.documents)

    @property
    def scopes(self) -> list[ConfigScope]:
        return [doc.scope for doc in self.documents]

    def render(self) -> str:
        """Concatenate documents with a header naming each source."""
        return "".join(
            f"--- Context from {doc.path} ({doc.scope.value}) ---\n{doc.content}\n\n"
            for doc in self.documents
        )

    def find_relevant(self, query: str) -> list[tuple[int, str]]:
        """Find paragraphs sharing keywords with a query.

        Args:
            query: Free text, split on whitespace into keywords

        Returns:
            list of (match count, paragraph), best matches first; ties keep
            document order
        """
        keywords = [word.lower() for word in query.split()]
        if not keywords:
            return []

        matches = []
        for doc in self.documents:
            for paragraph in re.split(r"\n\s*\n", doc.content):
                lowered = paragraph.lower()
                hits = sum(1 for keyword in keywords if keyword in lowered)
                if hits:
                    matches.append((hits, paragraph.strip()))

        return sorted(matches, key=lambda m: m[0], reverse=True)

    def resolve_file_reference(self, reference: str, cwd: Path) -> Path:
        """Resolve an ``@path`` reference.

        Absolute paths are kept; relative paths resolve against the project
        root when known, otherwise against ``cwd``.
        """
        target = Path(reference.lstrip("@")).expanduser()
        if target.is_absolute():
            return target
        return (self.project_root or cwd) / target


class FileSource(Protocol):
    """Narrow filesystem interface used by document discovery."""

    def exists(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def read_text(self, path: Path) -> str: ...


class LocalFileSource:
    """FileSource backed by the local filesystem."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")


def find_project_root(start: Path, markers: list[str] | tuple[str, ...], source: FileSource) -> Path | None:
    """Walk upward from ``start`` to the nearest directory holding a marker.

    Args:
        start: Directory to start from (inclusive)
        markers: File or directory names marking a project root
        source: Filesystem access

    Returns:
        Path | None: Project root, or None when no ancestor has a marker
    """
    for directory in (start, *start.parents):
        if any(source.exists(directory / marker) for marker in markers):
            return directory
    return None


def _load(scope: ConfigScope, path: Path, source: FileSource) -> ConfigDocument | None:
    if not source.exists(path):
        return None
    if not source.is_file(path):
        raise ConfigError(f"{scope.value} context is not a regular file", path)

    try:
        content = source.read_text(path)
    except UnicodeDecodeError as e:
        raise ConfigError(f"{scope.value} context is not valid UTF-8 text", path) from e
    except OSError as e:
        raise ConfigError(f"Cannot read {scope.value.lower()} context: {e.strerror or e}", path) from e

    if "\x00" in content:
        raise ConfigError(f"{scope.value} context contains binary data", path)

    return ConfigDocument(scope=scope, path=path, content=content)


def discover_documents(
    cwd: Path,
    *,
    global_path: Path | None,
    source: FileSource,
    filename: str = "PROJECT.md",
    markers: list[str] | tuple[str, ...] = (".git",),
) -> ContextBundle:
    """Discover and load context documents for a working directory.

    The result depends only on ``cwd`` and what ``source`` reports for the
    fixed candidate paths, never on directory listing order.

    Args:
        cwd: Absolute working directory
        global_path: Global context file, or None to skip the global scope
        source: Filesystem access
        filename: Name of project and directory context files
        markers: Names marking the project root

    Returns:
        ContextBundle: Documents ordered Global, Project, Directory (root to leaf)

    Raises:
        ConfigError: If a present document cannot be read as text
    """
    documents: list[ConfigDocument] = []

    if global_path is not None:
        doc = _load(ConfigScope.GLOBAL, global_path, source)
        if doc is not None:
            documents.append(doc)

    project_root = find_project_root(cwd, markers, source)

    if project_root is not None:
        doc = _load(ConfigScope.PROJECT, project_root / filename, source)
        if doc is not None:
            documents.append(doc)
        # Strictly below the root, root to leaf.
        parts = cwd.relative_to(project_root).parts
        directories = [project_root.joinpath(*parts[:i]) for i in range(1, len(parts) + 1)]
    else:
        directories = [cwd]

    for directory in directories:
        doc = _load(ConfigScope.DIRECTORY, directory / filename, source)
        if doc is not None:
            documents.append(doc)

    return ContextBundle(documents=tuple(documents), project_root=project_root)


class ContextResolver:
    """Resolves the context bundle for a working directory.

    Attributes:
        global_path: Global context file
        filename: Project/directory context file name
        markers: Project root markers
    """

    def __init__(
        self,
        global_path: Path | None,
        filename: str = "PROJECT.md",
        markers: list[str] | tuple[str, ...] = (".git",),
        source: FileSource | None = None,
    ):
        """Initialize the resolver.

        Args:
            global_path: Global context file (None disables the global scope)
            filename: Name of project and directory context files
            markers: Names marking the project root
            source: Filesystem access (local filesystem if None)
        """
        self.global_path = global_path
        self.filename = filename
        self.markers = tuple(markers)
        self.source = source or LocalFileSource()

    def resolve(self, cwd: Path) -> ContextBundle:
        """Build the context bundle for ``cwd``.

        Raises:
            ConfigError: If a present document is unreadable
        """
        cwd = cwd.expanduser().resolve()
        with Timer("resolve context", logger):
            bundle = discover_documents(
                cwd,
                global_path=self.global_path,
                source=self.source,
                filename=self.filename,
                markers=self.markers,
            )
        logger.debug(
            "Resolved context",
            cwd=str(cwd),
            project_root=str(bundle.project_root) if bundle.project_root else None,
            scopes=[s.value for s in bundle.scopes],
        )
        return bundle


_REFERENCE_PATTERN = re.compile(r"(?<![\w@])@([\w./~-]+)")


def expand_file_references(
    text: str,
    bundle: ContextBundle,
    cwd: Path,
    source: FileSource | None = None,
) -> str:
    """Append the content of every ``@path`` reference found in ``text``.

    References that do not name a regular file are left as plain text.

    Raises:
        ConfigError: If a referenced file exists but cannot be read
    """
    source = source or LocalFileSource()
    sections = [text]
    seen: set[Path] = set()

    for match in _REFERENCE_PATTERN.finditer(text):
        path = bundle.resolve_file_reference(match.group(0), cwd)
        if path in seen or not source.is_file(path):
            if path not in seen:
                logger.debug("Ignoring file reference", reference=match.group(0), path=str(path))
            continue
        seen.add(path)
        try:
            content = source.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read referenced file {match.group(0)}", path) from e
        sections.append(f"--- {match.group(0)} ---\n{content}")

    return "\n\n".join(sections)


HISTORY_FILES = (
    ".zsh_history",
    ".bash_history",
    ".local/share/fish/fish_history",
    ".config/fish/fish_history",
)


def _history_command(line: str) -> str | None:
    # zsh extended history: ": 1700000000:0;git status"
    if line.startswith(": ") and ";" in line:
        return line.split(";", 1)[1]
    # fish: "- cmd: git status", followed by "  when: ..." lines
    if line.startswith("- cmd: "):
        return line[len("- cmd: "):]
    if line.startswith("  ") and line.lstrip().startswith(("when:", "paths:", "- ")):
        return None
    # bash with HISTTIMEFORMAT: "#1700000000"
    if line.startswith("#") and line[1:].isdigit():
        return None
    return line


def read_shell_history(home: Path, limit: int = 50) -> list[str]:
    """Read the most recent commands from the user's shell history files.

    Each history file contributes at most ``limit`` commands, oldest first.
    Missing files are skipped; unreadable ones are logged and skipped since
    history is optional context.

    Args:
        home: User home directory holding the history files
        limit: Commands taken from the end of each file

    Returns:
        list[str]: Commands, grouped by history file
    """
    if limit <= 0:
        return []

    commands: list[str] = []
    for name in HISTORY_FILES:
        path = home / name
        if not path.is_file():
            continue
        try:
            lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            logger.warning("Cannot read shell history", path=str(path), error=str(e))
            continue

        recent = [cmd.strip() for cmd in map(_history_command, lines) if cmd and cmd.strip()]
        commands.extend(recent[-limit:])
        logger.debug("Read shell history", path=str(path), commands=len(recent[-limit:]))

    return commands


DEFAULT_GLOBAL_CONFIG = """# AI CLI Global Configuration

## Developer Preferences
- I prefer conventional commits with clear descriptions
- Focus on user-facing changes in commit messages
- Include breaking changes warnings when applicable

## AI Model Preferences
- Default to local models for privacy
- Keep responses concise and actionable
"""

DEFAULT_PROJECT_CONFIG = """# Project Configuration: {name}

## Project Overview
Describe what this project does and who uses it.

## Development Guidelines
- Follow the conventional commits specification
- Mention breaking changes explicitly

## Commit Scopes
List the scopes used in commit messages (e.g. `cli`, `core`, `docs`).
"""


def create_default_global_config(home: Path, filename: str = "CONFIG.md") -> tuple[Path, bool]:
    """Write the default global context file unless it already exists.

    Returns:
        (path, created) where ``created`` is False if the file existed
    """
    home.mkdir(parents=True, exist_ok=True)
    path = home / filename
    if path.exists():
        return path, False
    path.write_text(DEFAULT_GLOBAL_CONFIG, encoding="utf-8")
    return path, True


def create_default_project_config(root: Path, filename: str = "PROJECT.md") -> tuple[Path, bool]:
    """Write a default project context file unless it already exists.

    Returns:
        (path, created) where ``created`` is False if the file existed
    """
    path = root / filename
    if path.exists():
        return path, False
    path.write_text(DEFAULT_PROJECT_CONFIG.format(name=root.name or "project"), encoding="utf-8")
    return path, True
