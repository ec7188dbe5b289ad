"""Configuration management for ai-cli using Pydantic settings.

Settings are loaded from environment variables and the user-level
``~/.ai-cli/.env`` file written by ``ai-cli init``. A ``.env`` in the working
directory is never read: a cloned repository must not be able to relocate the
trust store or redirect diffs to another backend.

Only the CLI wiring and the AI backends read these values; the trust store
and context resolver receive explicit paths.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOME = Path.home() / ".ai-cli"

BackendName = Literal["local", "openai", "anthropic"]


class Settings(BaseSettings):
    """Main configuration settings for ai-cli.

    Environment variables take precedence over the user-level ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=DEFAULT_HOME / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    ai_cli_home: Path = Field(
        default=DEFAULT_HOME,
        description="Directory holding CONFIG.md, the trust store and the user .env file",
    )

    # Backend selection
    ai_cli_default_model: BackendName = Field(
        default="local",
        description="Backend used when --model is not given",
    )
    ai_cli_fallback_to_openai: bool = Field(
        default=True,
        description="Retry commit generation with OpenAI when the local model fails",
    )

    # Ollama
    ai_cli_local_model: str = Field(
        default="gemma2:9b",
        description="Ollama model used for the 'local' backend",
    )
    ai_cli_ollama_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL",
    )

    # Remote backends
    ai_cli_openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model",
    )
    ai_cli_anthropic_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        description="Anthropic messages model",
    )
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")

    ai_cli_timeout: int = Field(
        default=120,
        description="Timeout for AI backend requests in seconds",
        ge=5,
        le=600,
    )
    ai_cli_max_diff_chars: int = Field(
        default=20000,
        description="Diffs longer than this are truncated before prompting",
        ge=1000,
    )

    # Logging
    ai_cli_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level for the application",
    )
    ai_cli_log_file: Path | None = Field(
        default=None,
        description="Optional file path to write JSON logs",
    )

    # Context discovery
    ai_cli_global_filename: str = Field(
        default="CONFIG.md",
        description="Name of the global context file inside ai_cli_home",
    )
    ai_cli_context_filename: str = Field(
        default="PROJECT.md",
        description="Name of project and directory context files",
    )
    ai_cli_project_markers: list[str] = Field(
        default=[".git"],
        description="Entries whose presence marks a project root",
    )
    ai_cli_shell_history: int = Field(
        default=0,
        description="Recent shell commands added to commit prompts (0 disables)",
        ge=0,
        le=200,
    )

    # MCP
    ai_cli_mcp_server: str | None = Field(
        default=None,
        description="Command starting an MCP server over stdio, checked by 'init'",
    )
    ai_cli_mcp_timeout: float = Field(
        default=10.0,
        description="Seconds to wait for each MCP response",
        gt=0,
        le=120,
    )

    @field_validator("ai_cli_home", "ai_cli_log_file", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path | None) -> Path | None:
        """Expand relative paths to absolute paths."""
        if v is None:
            return None
        path = Path(v)
        return path.expanduser().resolve()

    def ensure_directories(self) -> None:
        """Create the ai-cli home directory if it doesn't exist."""
        self.ai_cli_home.mkdir(parents=True, exist_ok=True)

    @property
    def trust_store_path(self) -> Path:
        """Path to the persisted trusted folders file."""
        return self.ai_cli_home / "trusted_folders.json"

    @property
    def global_config_path(self) -> Path:
        """Path to the global context document."""
        return self.ai_cli_home / self.ai_cli_global_filename

    @property
    def user_env_path(self) -> Path:
        """Path to the user-level .env file written by ``init``."""
        return self.ai_cli_home / ".env"

    @property
    def ollama_base_url(self) -> str:
        """Get the base URL for the Ollama API."""
        return self.ai_cli_ollama_url.rstrip("/")

    def model_dump_safe(self) -> dict[str, str]:
        """Dump settings as a dictionary with secrets masked."""
        return {
            "home": str(self.ai_cli_home),
            "default_model": self.ai_cli_default_model,
            "local_model": self.ai_cli_local_model,
            "ollama_url": self.ai_cli_ollama_url,
            "openai_model": self.ai_cli_openai_model,
            "anthropic_model": self.ai_cli_anthropic_model,
            "openai_api_key": "✓ configured" if self.openai_api_key else "not set",
            "anthropic_api_key": "✓ configured" if self.anthropic_api_key else "not set",
            "timeout": str(self.ai_cli_timeout),
            "fallback_to_openai": str(self.ai_cli_fallback_to_openai),
            "log_level": self.ai_cli_log_level,
            "shell_history": str(self.ai_cli_shell_history),
            "mcp_server": self.ai_cli_mcp_server or "not set",
            "trust_store": str(self.trust_store_path),
            "global_config": str(self.global_config_path),
        }


# Global settings instance
_settings: Settings | None = None


def _load_settings() -> Settings:
    settings = Settings()
    if settings.user_env_path != DEFAULT_HOME / ".env":
        # AI_CLI_HOME moves the user-level .env written by ``init``.
        settings = Settings(_env_file=settings.user_env_path)
    settings.ensure_directories()
    return settings


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches the settings on first call.

    Returns:
        Settings: The global settings instance
    """
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment/files.

    Returns:
        Settings: The newly loaded settings instance
    """
    global _settings
    _settings = _load_settings()
    return _settings
