"""Main entry point for the ai-cli command line.

This module provides the Click command group and the commit, explain, init,
config, trust, run and version commands. Workflows live in the orchestrator;
this module only wires settings, logging and the console together.
"""

import asyncio
import os
from pathlib import Path
from typing import NoReturn

import click
from pydantic import ValidationError

from aicli import __version__
from aicli.config import Settings, reload_settings
from aicli.context import (
    ContextResolver,
    create_default_global_config,
    create_default_project_config,
    find_project_root,
    LocalFileSource,
)
from aicli.exceptions import ConfigError, TrustViolationError
from aicli.llm import BACKENDS
from aicli.logging import bind_invocation, get_logger, setup_logging
from aicli.orchestrator import (
    EXIT_FAILURE,
    OUTPUT_FORMATS,
    Orchestrator,
    split_command,
)
from aicli.security import TrustStore
from aicli.ui.console import AICliConsole, get_console
from aicli.ui.prompts import confirm

logger = get_logger("aicli.main")


def _bootstrap(ctx: click.Context) -> tuple[Settings, AICliConsole]:
    """Load settings and configure logging for a subcommand.

    Exits with status 1 when the settings are invalid.
    """
    opts = ctx.find_root().obj or {}
    verbose = opts.get("verbose", False)
    debug = opts.get("debug", False)
    console = get_console(no_color=opts.get("no_color", False), verbose=verbose or debug)

    try:
        settings = reload_settings()
    except ValidationError as e:
        console.error(f"Invalid configuration: {e}")
        ctx.exit(EXIT_FAILURE)

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = settings.ai_cli_log_level
    setup_logging(level=level, log_file=settings.ai_cli_log_file)
    bind_invocation(ctx.command_path)
    logger.debug("Settings loaded", home=str(settings.ai_cli_home), default_model=settings.ai_cli_default_model)

    return settings, console


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode (very detailed logging)")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, no_color: bool):
    """ai-cli - AI generated commit messages and change explanations.

    Every Git command the tool runs goes through a trust and approval check.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["no_color"] = no_color


@cli.command()
@click.option("--message", "-m", default=None, help="Extra context for the AI (supports @file references)")
@click.option("--all", "-a", "stage_all", is_flag=True, help="Stage all changes before generating")
@click.option("--model", type=click.Choice(BACKENDS), default=None, help="AI backend to use")
@click.option("--yes", "-y", is_flag=True, help="Answer routine confirmations with yes (never dangerous ones)")
@click.pass_context
def commit(ctx: click.Context, message: str | None, stage_all: bool, model: str | None, yes: bool):
    """Generate a commit message for the staged changes and commit."""
    settings, console = _bootstrap(ctx)
    orchestrator = Orchestrator(settings, console, assume_yes=yes)
    ctx.exit(asyncio.run(orchestrator.commit(message=message, stage_all=stage_all, backend=model)))


@cli.command()
@click.option("--hash", "commit_hash", default=None, help="Commit to explain (default: staged changes)")
@click.option("--model", type=click.Choice(BACKENDS), default=None, help="AI backend to use")
@click.option("--format", "output_format", type=click.Choice(OUTPUT_FORMATS), default="text", help="Output format")
@click.option("--detailed", is_flag=True, help="Produce a detailed, sectioned explanation")
@click.pass_context
def explain(ctx: click.Context, commit_hash: str | None, model: str | None, output_format: str, detailed: bool):
    """Explain a commit or the staged changes."""
    settings, console = _bootstrap(ctx)
    orchestrator = Orchestrator(settings, console)
    ctx.exit(
        asyncio.run(
            orchestrator.explain(
                commit=commit_hash,
                backend=model,
                output_format=output_format,
                detailed=detailed,
            )
        )
    )


def _dotenv_value(value: str) -> str:
    if not any(c.isspace() or c in "#'\"\\" for c in value):
        return value
    # Single quotes keep the value literal; only backslash and quote are escaped.
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _update_env_file(path: Path, values: dict[str, str]) -> None:
    """Set keys in a dotenv file, keeping unrelated lines."""
    lines = path.read_text(encoding="utf-8").splitlines() if path.exists() else []
    remaining = dict(values)

    updated = []
    for line in lines:
        key = line.split("=", 1)[0].strip()
        if key in remaining:
            updated.append(f"{key}={_dotenv_value(remaining.pop(key))}")
        else:
            updated.append(line)
    updated.extend(f"{key}={_dotenv_value(value)}" for key, value in remaining.items())

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(updated) + "\n", encoding="utf-8")
    os.chmod(path, 0o600)


@cli.command()
@click.option("--model", type=click.Choice(BACKENDS), default=None, help="Default AI backend")
@click.option("--openai-key", default=None, help="OpenAI API key")
@click.option("--anthropic-key", default=None, help="Anthropic API key")
@click.option("--ollama-url", default=None, help="Ollama server URL")
@click.option("--mcp-server", default=None, help="Command starting an MCP server over stdio (checked once)")
@click.option("--trust/--no-trust", "trust_cwd", default=None, help="Trust the current folder")
@click.pass_context
def init(
    ctx: click.Context,
    model: str | None,
    openai_key: str | None,
    anthropic_key: str | None,
    ollama_url: str | None,
    mcp_server: str | None,
    trust_cwd: bool | None,
):
    """Write default configuration and context files."""
    settings, console = _bootstrap(ctx)
    console.info("Initializing AI CLI configuration...")

    values = {}
    if model:
        values["AI_CLI_DEFAULT_MODEL"] = model
        console.success(f"Default model set to: {model}")
    if openai_key:
        values["OPENAI_API_KEY"] = openai_key
        console.success("OpenAI API key configured")
    if anthropic_key:
        values["ANTHROPIC_API_KEY"] = anthropic_key
        console.success("Anthropic API key configured")
    if ollama_url:
        values["AI_CLI_OLLAMA_URL"] = ollama_url
        console.success(f"Ollama URL set to: {ollama_url}")
    if mcp_server:
        values["AI_CLI_MCP_SERVER"] = mcp_server
        console.success(f"MCP server set to: {mcp_server}")
    if values:
        _update_env_file(settings.user_env_path, values)
        console.success(f"Saved settings to {settings.user_env_path}")

    cwd = Path.cwd().resolve()
    project_root = find_project_root(cwd, settings.ai_cli_project_markers, LocalFileSource()) or cwd

    for path, created in (
        create_default_global_config(settings.ai_cli_home, settings.ai_cli_global_filename),
        create_default_project_config(project_root, settings.ai_cli_context_filename),
    ):
        if created:
            console.success(f"Created {path}")
        else:
            console.info(f"Keeping existing {path}")

    if trust_cwd is None:
        try:
            trust_cwd = confirm(f"Trust {cwd} for Git changes?", default=False, console=console.console)
        except (KeyboardInterrupt, EOFError):
            trust_cwd = False

    if trust_cwd:
        try:
            TrustStore(settings.trust_store_path).trust(cwd)
        except (ConfigError, TrustViolationError) as e:
            console.error(str(e))
            ctx.exit(EXIT_FAILURE)
        console.success(f"Trusted {cwd}")

    server_command = mcp_server or settings.ai_cli_mcp_server
    if server_command:
        console.info("Checking MCP server...")
        orchestrator = Orchestrator(settings, console, cwd=cwd)
        asyncio.run(orchestrator.check_mcp_server(server_command))

    console.print("\n🎉 AI CLI initialization complete!")
    console.print("Run 'ai-cli commit' to generate your first AI-powered commit message.")


@cli.command()
@click.option("--verbose", "show_context", is_flag=True, help="Also show context files and trust status")
@click.pass_context
def config(ctx: click.Context, show_context: bool):
    """Show current configuration."""
    settings, console = _bootstrap(ctx)
    console.show_table("AI CLI Configuration", settings.model_dump_safe())

    if not show_context:
        console.print("\n[dim]Use --verbose for context files and trust status[/dim]")
        return

    cwd = Path.cwd().resolve()
    resolver = ContextResolver(
        settings.global_config_path,
        filename=settings.ai_cli_context_filename,
        markers=settings.ai_cli_project_markers,
    )
    try:
        bundle = resolver.resolve(cwd)
        trusted = TrustStore(settings.trust_store_path).is_trusted(cwd)
    except ConfigError as e:
        console.error(str(e))
        ctx.exit(EXIT_FAILURE)

    rows = {f"{doc.scope.value} context": str(doc.path) for doc in bundle}
    if not rows:
        rows = {"Context": "no context files found"}
    rows["Project root"] = str(bundle.project_root) if bundle.project_root else "none"
    rows["Current folder"] = "✓ trusted" if trusted else "not trusted"
    console.show_table("Context", rows, key_header="Source")


@cli.group()
def trust():
    """Manage trusted folders."""


@trust.command("add")
@click.argument("path", type=click.Path(exists=True, file_okay=False), default=".")
@click.pass_context
def trust_add(ctx: click.Context, path: str):
    """Trust a folder (and everything below it)."""
    settings, console = _bootstrap(ctx)
    try:
        entry = TrustStore(settings.trust_store_path).trust(path)
    except (ConfigError, TrustViolationError) as e:
        console.error(str(e))
        ctx.exit(EXIT_FAILURE)
    console.success(f"Trusted {entry.path}")


@trust.command("remove")
@click.argument("path", type=click.Path(file_okay=False), default=".")
@click.pass_context
def trust_remove(ctx: click.Context, path: str):
    """Stop trusting a folder."""
    settings, console = _bootstrap(ctx)
    try:
        removed = TrustStore(settings.trust_store_path).revoke(path)
    except ConfigError as e:
        console.error(str(e))
        ctx.exit(EXIT_FAILURE)
    if removed:
        console.success(f"Removed {Path(path).resolve()}")
    else:
        console.warning(f"{Path(path).resolve()} was not trusted")


@trust.command("list")
@click.pass_context
def trust_list(ctx: click.Context):
    """List trusted folders."""
    settings, console = _bootstrap(ctx)
    try:
        entries = TrustStore(settings.trust_store_path).entries()
    except ConfigError as e:
        console.error(str(e))
        ctx.exit(EXIT_FAILURE)
    if not entries:
        console.info("No trusted folders")
        return
    console.show_table(
        "Trusted Folders",
        {str(e.path): e.trusted_at.strftime("%Y-%m-%d %H:%M UTC") for e in entries},
        key_header="Folder",
    )


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.option("--yes", "-y", is_flag=True, help="Answer routine confirmations with yes (never dangerous ones)")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, yes: bool, command: tuple[str, ...]):
    """Run a command through the approval check (no shell).

    A single quoted argument is split like a shell command line.
    """
    settings, console = _bootstrap(ctx)
    argv = split_command(command[0]) if len(command) == 1 else list(command)
    orchestrator = Orchestrator(settings, console, assume_yes=yes)
    ctx.exit(asyncio.run(orchestrator.run_command(argv)))


@cli.command()
def version():
    """Show version information."""
    click.echo(f"ai-cli version {__version__}")


def main() -> NoReturn:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
