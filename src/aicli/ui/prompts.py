"""User input handling for ai-cli.

Thin wrappers around Rich prompts. EOF and Ctrl-C propagate to the caller;
the approval handler turns them into a refusal.
"""

from rich.console import Console
from rich.prompt import Confirm, Prompt

_default_console: Console | None = None


def _resolve(console: Console | None) -> Console:
    global _default_console
    if console is not None:
        return console
    if _default_console is None:
        _default_console = Console()
    return _default_console


def confirm(message: str, default: bool = False, console: Console | None = None) -> bool:
    """Ask a yes/no question; Enter picks ``default``."""
    return Confirm.ask(f"[yellow]?[/yellow] {message}", default=default, console=_resolve(console))


def prompt(message: str, default: str = "", console: Console | None = None) -> str:
    """Read one line of free text, such as a replacement commit message."""
    return Prompt.ask(f"[cyan]>[/cyan] {message}", default=default, console=_resolve(console))


def choose(
    message: str,
    choices: dict[str, str],
    default: str,
    console: Console | None = None,
) -> str:
    """Offer a set of one-key answers and return the chosen key.

    Args:
        message: Question shown after the list of options
        choices: Answer key (e.g. ``"e"``) mapped to what it does
        default: Key returned on a bare Enter

    Returns:
        str: One of the keys of ``choices``
    """
    console = _resolve(console)
    for key, description in choices.items():
        console.print(f"  [bold]\\[{key}][/bold] {description}")

    return Prompt.ask(
        f"[yellow]?[/yellow] {message}",
        choices=list(choices),
        default=default,
        show_choices=True,
        console=console,
    )
