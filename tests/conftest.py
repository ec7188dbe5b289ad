"""Pytest configuration and fixtures for ai-cli tests."""

import logging
import shutil
import subprocess
import sys
from pathlib import Path

import pytest
import structlog

from aicli.config import Settings
from aicli.security import ApprovalChoice, TrustStore


ENV_VARS = (
    "AI_CLI_HOME",
    "AI_CLI_DEFAULT_MODEL",
    "AI_CLI_FALLBACK_TO_OPENAI",
    "AI_CLI_LOCAL_MODEL",
    "AI_CLI_OLLAMA_URL",
    "AI_CLI_OPENAI_MODEL",
    "AI_CLI_ANTHROPIC_MODEL",
    "AI_CLI_LOG_LEVEL",
    "AI_CLI_LOG_FILE",
    "AI_CLI_SHELL_HISTORY",
    "AI_CLI_MCP_SERVER",
    "AI_CLI_MCP_TIMEOUT",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
)


@pytest.fixture(autouse=True)
def silent_structlog():
    """Render log events without writing them anywhere."""
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.KeyValueRenderer()],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove ai-cli related environment variables."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def temp_home(tmp_path):
    """Create an isolated ai-cli home directory."""
    home = tmp_path / "ai-cli-home"
    home.mkdir()
    return home


@pytest.fixture
def test_settings(temp_home, clean_env):
    """Create test settings with an isolated home and no .env files."""
    return Settings(
        _env_file=None,
        ai_cli_home=temp_home,
        ai_cli_log_level="DEBUG",
        ai_cli_fallback_to_openai=False,
    )


@pytest.fixture
def trust_store(temp_home):
    """Create an empty trust store inside the temporary home."""
    return TrustStore(temp_home / "trusted_folders.json")


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git():
    """Helper running git in a directory."""
    return _git


@pytest.fixture
def git_repo(tmp_path):
    """Create a git repository with one commit.

    Skips when git is not installed.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q", "-b", "main")
    _git(repo, "config", "user.name", "Test User")
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "commit.gpgsign", "false")

    (repo / "README.md").write_text("# Demo\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-q", "-m", "chore: initial commit")
    return repo


class ScriptedHandler:
    """Approval handler double answering from a script.

    Records every request it was asked about.
    """

    def __init__(self, *answers: ApprovalChoice, replacements: tuple[str | None, ...] = ()):
        self.answers = list(answers)
        self.replacements = list(replacements)
        self.requests = []

    async def request_approval(self, request, allow_edit: bool = False) -> ApprovalChoice:
        self.requests.append(request)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt for {request.command!r}")
        return self.answers.pop(0)

    def ask_replacement(self, label: str = "") -> str | None:
        return self.replacements.pop(0) if self.replacements else None


@pytest.fixture
def scripted_handler():
    """Factory for ScriptedHandler instances."""
    return ScriptedHandler


FAKE_MCP_SERVER = '''
import json
import sys

MODE = sys.argv[1] if len(sys.argv) > 1 else "ok"
TOOLS = [
    {"name": "read_file", "description": "Read a file", "inputSchema": {"type": "object"}},
    {"name": "search", "inputSchema": {"type": "object"}},
]


def send(message):
    sys.stdout.write(json.dumps(message) + "\\n")
    sys.stdout.flush()


if MODE == "exit":
    sys.exit(0)

for line in sys.stdin:
    message = json.loads(line)
    if "id" not in message or MODE == "silent":
        continue
    method = message["method"]
    if MODE == "error":
        send({"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32601, "message": "Method not found"}})
        continue
    if method == "initialize":
        send({"jsonrpc": "2.0", "method": "notifications/message", "params": {"level": "info"}})
        print("server starting")
        sys.stdout.flush()
        capabilities = {} if MODE == "no-tools" else {"tools": {}}
        result = {
            "protocolVersion": message["params"]["protocolVersion"],
            "capabilities": capabilities,
            "serverInfo": {"name": "fake-mcp", "version": "1.0.0"},
        }
    elif method == "tools/list":
        if message["params"].get("cursor") is None:
            result = {"tools": TOOLS[:1], "nextCursor": "page-2"}
        else:
            result = {"tools": TOOLS[1:]}
    else:
        result = {}
    send({"jsonrpc": "2.0", "id": message["id"], "result": result})
'''


@pytest.fixture
def mcp_server(tmp_path):
    """Factory returning the argv of a stdio MCP server double.

    Modes: ``ok``, ``no-tools``, ``error`` (every request fails),
    ``silent`` (never answers) and ``exit`` (exits at once).
    """
    script = tmp_path / "fake_mcp_server.py"
    script.write_text(FAKE_MCP_SERVER)

    def make(mode: str = "ok") -> list[str]:
        return [sys.executable, str(script), mode]

    return make
