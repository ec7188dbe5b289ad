"""User interface components for ai-cli.

Console output and user input helpers built on Rich.
"""

from aicli.ui.console import AICliConsole, get_console, AICLI_THEME
from aicli.ui.prompts import confirm, prompt, choose

__all__ = [
    # Console
    "AICliConsole",
    "get_console",
    "AICLI_THEME",
    # Prompts
    "confirm",
    "prompt",
    "choose",
]
