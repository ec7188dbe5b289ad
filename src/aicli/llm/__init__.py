"""AI backend integration: clients, prompts and response models."""

from aicli.llm.client import (
    BACKENDS,
    AnthropicClient,
    BaseLLMClient,
    LLMAPIError,
    LLMConfigurationError,
    LLMConnectionError,
    LLMError,
    OllamaClient,
    OpenAIClient,
    generate_commit_message,
    generate_explanation,
    get_backend,
)
from aicli.llm.models import AIResponse, GenerationOptions, TokenUsage
from aicli.llm.prompts import (
    create_commit_prompt,
    create_explain_prompt,
    refine_conventional_commit,
)

__all__ = [
    # Clients
    "BACKENDS",
    "BaseLLMClient",
    "OllamaClient",
    "OpenAIClient",
    "AnthropicClient",
    "get_backend",
    "generate_commit_message",
    "generate_explanation",
    # Exceptions
    "LLMError",
    "LLMConnectionError",
    "LLMAPIError",
    "LLMConfigurationError",
    # Models
    "AIResponse",
    "GenerationOptions",
    "TokenUsage",
    # Prompts
    "create_commit_prompt",
    "create_explain_prompt",
    "refine_conventional_commit",
]
