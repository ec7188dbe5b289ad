"""Orchestration of the commit, explain and run workflows.

The orchestrator wires the collaborators around the core: it resolves the
context bundle, reads diffs, calls the AI backend and sends every command it
wants to run through the gated CommandExecutor. Each workflow returns a
process exit code.
"""

import json
import shlex
from pathlib import Path

import httpx

from aicli.config import Settings
from aicli.context import (
    ContextBundle,
    ContextResolver,
    expand_file_references,
    read_shell_history,
)
from aicli.exceptions import ConfigError
from aicli.executor import CommandExecutor
from aicli.git import GitError, GitRepository
from aicli.llm import LLMError, generate_commit_message, generate_explanation
from aicli.llm.prompts import truncate_diff
from aicli.logging import get_logger
from aicli.mcp import MCPClient, MCPError, ServerSummary
from aicli.security import ApprovalGate, ApprovalHandler, TrustStore
from aicli.ui.console import AICliConsole

logger = get_logger("aicli.orchestrator")

EXIT_OK = 0
EXIT_FAILURE = 1

OUTPUT_FORMATS = ("text", "markdown", "json")

# Paragraphs of context matched against the --message hint.
MAX_RELEVANT_NOTES = 3


class Orchestrator:
    """Runs one CLI workflow against a working directory.

    Attributes:
        settings: Loaded settings
        console: Output console
        cwd: Working directory of the invocation
        gate: Approval gate shared by every command of this invocation
        executor: Gated command executor
    """

    def __init__(
        self,
        settings: Settings,
        console: AICliConsole,
        cwd: Path | None = None,
        gate: ApprovalGate | None = None,
        handler: ApprovalHandler | None = None,
        resolver: ContextResolver | None = None,
        repository: GitRepository | None = None,
        assume_yes: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            settings: Loaded settings
            console: Output console
            cwd: Working directory (current directory if None)
            gate: Approval gate (built from the settings' trust store if None)
            handler: Approval handler (interactive handler on ``console`` if None)
            resolver: Context resolver (built from settings if None)
            repository: Git repository wrapper for ``cwd`` (created if None)
            assume_yes: Pre-answer CAUTION prompts
            transport: Optional httpx transport for the AI backends
        """
        self.settings = settings
        self.console = console
        self.cwd = (cwd or Path.cwd()).resolve()
        self.gate = gate or ApprovalGate(TrustStore(settings.trust_store_path))
        self.handler = handler or ApprovalHandler(console, self.gate.classifier)
        self.resolver = resolver or ContextResolver(
            settings.global_config_path,
            filename=settings.ai_cli_context_filename,
            markers=settings.ai_cli_project_markers,
        )
        self.repository = repository or GitRepository(self.cwd)
        self.executor = CommandExecutor(self.gate, self.handler, console, assume_yes=assume_yes)
        self.transport = transport

    def _resolve_context(self) -> ContextBundle:
        bundle = self.resolver.resolve(self.cwd)
        if bundle.documents:
            self.console.debug(
                "Loaded context: " + ", ".join(f"{d.scope.value} ({d.path})" for d in bundle)
            )
        return bundle

    async def commit(
        self,
        message: str | None = None,
        stage_all: bool = False,
        backend: str | None = None,
    ) -> int:
        """Generate a commit message for the staged changes and commit.

        Args:
            message: Extra context for the AI; ``@path`` references are expanded
            stage_all: Stage all changes first (gated ``git add -A``)
            backend: Backend name (defaults to settings)

        Returns:
            int: Exit code
        """
        try:
            # Context first: an unreadable document aborts before any AI call.
            bundle = self._resolve_context()
            hint = expand_file_references(message, bundle, self.cwd) if message else None

            if not self.repository.is_repository():
                raise GitError("Not inside a git repository")

            if stage_all:
                self.console.info("Staging all changes...")
                staged = await self.executor.execute(["git", "add", "-A"], self.cwd)
                if not staged.success:
                    return EXIT_FAILURE

            try:
                diff = self.repository.staged_diff()
            except GitError:
                if not stage_all:
                    self._report_unstaged()
                raise
            self.console.info(f"Analyzing {len(diff.splitlines())} lines of changes...")
            diff = truncate_diff(diff, self.settings.ai_cli_max_diff_chars)
            extra_context = self._commit_notes(hint, message, bundle)

            with self.console.thinking("AI is generating your commit message..."):
                response = await generate_commit_message(
                    diff,
                    backend=backend,
                    extra_context=extra_context,
                    context=bundle.render() or None,
                    settings=self.settings,
                    transport=self.transport,
                )
        except (ConfigError, GitError, LLMError) as e:
            logger.error("Commit aborted", error=str(e), error_type=type(e).__name__)
            self.console.error(str(e), exception=e)
            return EXIT_FAILURE

        logger.info("Commit message generated", model=response.model, backend=response.backend)
        return await self._confirm_and_commit(response.content)

    def _commit_notes(self, hint: str | None, message: str | None, bundle: ContextBundle) -> str | None:
        """Assemble the ADDITIONAL CONTEXT section of the commit prompt."""
        sections = [hint] if hint else []

        if message:
            relevant = [paragraph for _, paragraph in bundle.find_relevant(message)[:MAX_RELEVANT_NOTES]]
            if relevant:
                sections.append("Most relevant project notes:\n" + "\n\n".join(relevant))

        files = self.repository.staged_files()
        if files:
            sections.append("Staged files:\n" + "\n".join(f"- {path}" for path in files))

        if self.settings.ai_cli_shell_history:
            history = read_shell_history(Path.home(), self.settings.ai_cli_shell_history)
            if history:
                sections.append("Recent shell commands:\n" + "\n".join(history))

        return "\n\n".join(sections) or None

    def _report_unstaged(self) -> None:
        status = self.repository.status()
        if status.modified or status.untracked:
            self.console.warning(
                f"{status.modified} modified and {status.untracked} untracked file(s) "
                f"on {status.branch} are not staged; use --all to stage them."
            )

    async def _confirm_and_commit(self, commit_message: str) -> int:
        while True:
            self.console.commit_message(commit_message)
            try:
                result = await self.executor.execute(
                    ["git", "commit", "-m", commit_message],
                    self.cwd,
                    allow_edit=True,
                )
            except ConfigError as e:
                self.console.error(str(e), exception=e)
                return EXIT_FAILURE

            if result.edit_requested:
                replacement = self.handler.ask_replacement("Enter custom commit message")
                if replacement is None:
                    self.console.warning("Empty commit message. Commit cancelled.")
                    return EXIT_FAILURE
                commit_message = replacement
                continue

            if not result.executed:
                return EXIT_FAILURE
            if result.success:
                self.console.success("Commit successful!")
                return EXIT_OK
            return result.returncode or EXIT_FAILURE

    async def explain(
        self,
        commit: str | None = None,
        backend: str | None = None,
        output_format: str = "text",
        detailed: bool = False,
    ) -> int:
        """Explain a commit, or the staged changes when no commit is given.

        Args:
            commit: Commit hash to explain
            backend: Backend name (defaults to settings)
            output_format: ``text``, ``markdown`` or ``json``
            detailed: Ask for an in-depth explanation

        Returns:
            int: Exit code
        """
        try:
            bundle = self._resolve_context()
            diff = self.repository.commit_diff(commit) if commit else self.repository.staged_diff()
            diff = truncate_diff(diff, self.settings.ai_cli_max_diff_chars)

            request = generate_explanation(
                diff,
                detailed=detailed,
                backend=backend,
                context=bundle.render() or None,
                settings=self.settings,
                transport=self.transport,
            )
            if output_format == "json":
                response = await request
            else:
                with self.console.thinking("AI is analyzing the changes..."):
                    response = await request
        except (ConfigError, GitError, LLMError) as e:
            logger.error("Explain aborted", error=str(e), error_type=type(e).__name__)
            self.console.error(str(e), exception=e)
            return EXIT_FAILURE

        if output_format == "json":
            payload = {
                "analysis": response.content,
                "model": response.model,
                "backend": response.backend,
                "detailed": detailed,
                "commit": commit,
                "usage": response.usage.model_dump() if response.usage else None,
            }
            self.console.print(json.dumps(payload, indent=2), markup=False, soft_wrap=True)
        elif output_format == "markdown":
            self.console.print(
                f"## Code Change Analysis\n\n{response.content}",
                markup=False,
                soft_wrap=True,
            )
        else:
            self.console.explanation(response.content)

        return EXIT_OK

    async def check_mcp_server(self, command: str) -> ServerSummary | None:
        """Start an MCP server once and list its tools.

        The server command goes through the approval gate before it is
        started. Failures are reported as warnings; an MCP server is optional.

        Returns:
            ServerSummary | None: What the server reported, or None
        """
        argv = split_command(command)
        if not argv:
            self.console.warning(f"Cannot parse MCP server command: {command}")
            return None

        try:
            authorized = await self.executor.authorize(argv, self.cwd)
        except ConfigError as e:
            self.console.error(str(e), exception=e)
            return None
        if not authorized.decision.should_execute:
            return None

        client = MCPClient(argv, timeout=self.settings.ai_cli_mcp_timeout)
        try:
            with self.console.thinking("Connecting to MCP server..."):
                summary = await client.discover(self.cwd)
        except MCPError as e:
            logger.warning("MCP server check failed", command=authorized.command, error=str(e))
            self.console.warning(f"MCP server unavailable: {e}")
            self.console.info("This is normal if no MCP server is installed.")
            return None

        self.console.success(
            f"MCP server '{summary.server.name}' ready with {len(summary.tools)} tool(s)"
        )
        for tool in summary.tools:
            self.console.info(f"  {tool.name}: {tool.description}" if tool.description else f"  {tool.name}")
        return summary

    async def run_command(self, argv: list[str]) -> int:
        """Gate and run an arbitrary command.

        Returns:
            int: The command's exit status, or 1 when it was not run
        """
        if not argv:
            self.console.error("No command given")
            return EXIT_FAILURE
        try:
            result = await self.executor.execute(argv, self.cwd, allow_edit=True)
        except ConfigError as e:
            self.console.error(str(e), exception=e)
            return EXIT_FAILURE

        if result.edit_requested:
            replacement = self.handler.ask_replacement("Enter modified command")
            if replacement is None:
                self.console.warning("Empty command. Execution cancelled.")
                return EXIT_FAILURE
            return await self.run_command(split_command(replacement))

        if not result.executed:
            return result.returncode or EXIT_FAILURE
        return result.returncode or EXIT_OK


def split_command(text: str) -> list[str]:
    """Split a command line typed as one string into arguments.

    Returns an empty list when the quoting is unbalanced.
    """
    try:
        return shlex.split(text)
    except ValueError:
        return []
