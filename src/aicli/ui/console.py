"""Rich console wrapper for ai-cli with consistent styling.

This module provides the AICliConsole class which wraps Rich Console with
ai-cli styling and convenience methods for messages, commit previews,
explanations and tables.
"""

from contextlib import contextmanager
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme


AICLI_THEME = Theme({
    # Status colors
    "aicli.success": "green",
    "aicli.error": "red bold",
    "aicli.warning": "yellow",
    "aicli.info": "blue",

    # Special elements
    "aicli.primary": "cyan",
    "aicli.thinking": "yellow italic",
    "aicli.commit": "green bold",
    "aicli.command": "cyan bold",
    "aicli.header": "cyan bold",
    "aicli.footer": "dim",
})


class AICliConsole:
    """Rich console with ai-cli specific styling.

    Attributes:
        console: The underlying Rich Console instance
    """

    def __init__(self, no_color: bool = False, verbose: bool = False, stderr: bool = False):
        """Initialize the console.

        Args:
            no_color: Disable colored output
            verbose: Enable verbose output
            stderr: Write to stderr instead of stdout
        """
        self.console = Console(
            theme=AICLI_THEME,
            highlight=False,
            no_color=no_color,
            stderr=stderr,
        )
        self.verbose = verbose
        self.no_color = no_color

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console (passthrough to Rich Console)."""
        self.console.print(*args, **kwargs)

    def commit_message(self, message: str) -> None:
        """Display a generated commit message.

        Args:
            message: Commit message text
        """
        self.console.print(
            Panel(
                message,
                title="[aicli.header]AI Generated Commit Message[/aicli.header]",
                border_style="aicli.commit",
                padding=(1, 2),
            )
        )

    def explanation(self, text: str) -> None:
        """Display an AI explanation, rendered as Markdown.

        Args:
            text: Explanation text
        """
        self.console.print("\n📄 AI Analysis:", style="aicli.header")
        self.console.print(Markdown(text))

    def command_output(self, output: str) -> None:
        """Display the output of an executed command (verbatim)."""
        if output.strip():
            self.console.print(output.rstrip(), markup=False, style="aicli.footer")

    def error(self, message: str, exception: Exception | None = None) -> None:
        """Display an error message.

        Args:
            message: Error message
            exception: Optional exception (traceback shown in verbose mode)
        """
        self.console.print(f"✗ Error: {message}", style="aicli.error", markup=False)

        if exception and self.verbose:
            self.console.print_exception(show_locals=False)

    def warning(self, message: str) -> None:
        """Display a warning message."""
        self.console.print(f"⚠ Warning: {message}", style="aicli.warning", markup=False)

    def success(self, message: str) -> None:
        """Display a success message."""
        self.console.print(f"✓ {message}", style="aicli.success", markup=False)

    def info(self, message: str) -> None:
        """Display an informational message."""
        self.console.print(f"ℹ {message}", style="aicli.info", markup=False)

    def debug(self, message: str) -> None:
        """Display a debug message (only in verbose mode)."""
        if self.verbose:
            self.console.print(f"[DEBUG] {message}", style="dim", markup=False)

    @contextmanager
    def thinking(self, message: str = "AI is thinking..."):
        """Context manager for showing a spinner while waiting on a backend.

        Args:
            message: Message to show while waiting
        """
        with self.console.status(
            f"[aicli.thinking]{message}[/aicli.thinking]",
            spinner="dots",
        ) as status:
            yield status

    def show_table(self, title: str, rows: dict[str, Any], key_header: str = "Setting") -> None:
        """Display a two-column table.

        Args:
            title: Table title
            rows: Mapping of keys to values
            key_header: Header of the first column
        """
        table = Table(title=title, show_header=True)
        table.add_column(key_header, style="aicli.primary")
        table.add_column("Value", style="aicli.info")

        for key, value in rows.items():
            table.add_row(key, str(value))

        self.console.print(table)


# Global console instance
_console: AICliConsole | None = None


def get_console(no_color: bool = False, verbose: bool = False) -> AICliConsole:
    """Get the global console instance.

    Args:
        no_color: Disable colored output
        verbose: Enable verbose output

    Returns:
        AICliConsole: The global console instance
    """
    global _console
    if _console is None or _console.no_color != no_color or _console.verbose != verbose:
        _console = AICliConsole(no_color=no_color, verbose=verbose)
    return _console
