"""ai-cli - AI-powered Git assistant.

Generates conventional commit messages and change explanations with local or
remote models, and only runs Git commands after a trust/approval check.
"""

__version__ = "0.1.0"

from aicli.config import Settings, get_settings, reload_settings

__all__ = ["Settings", "get_settings", "reload_settings", "__version__"]
