"""Pydantic models for AI backend requests and responses.

Wire payloads differ per backend (Ollama generate, OpenAI chat completions,
Anthropic messages); every client normalizes its reply into an AIResponse.
"""

from typing import Literal

from pydantic import BaseModel, Field


# =============================================================================
# Normalized response
# =============================================================================


class TokenUsage(BaseModel):
    """Token accounting reported by a backend."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class AIResponse(BaseModel):
    """Text produced by an AI backend."""

    content: str = Field(..., description="Generated text, stripped")
    model: str = Field(..., description="Model that produced the text")
    backend: str = Field(..., description="Backend name (local, openai, anthropic)")
    usage: TokenUsage | None = Field(default=None, description="Token usage if reported")


class GenerationOptions(BaseModel):
    """Sampling options shared by all backends."""

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)
    max_tokens: int = Field(default=150, gt=0)

    @classmethod
    def for_commit(cls) -> "GenerationOptions":
        return cls(temperature=0.3, max_tokens=150)

    @classmethod
    def for_explain(cls, detailed: bool) -> "GenerationOptions":
        return cls(temperature=0.5, max_tokens=500 if detailed else 200)


# =============================================================================
# Ollama
# =============================================================================


class OllamaGenerateResponse(BaseModel):
    """Response from Ollama's /api/generate endpoint (non-streaming)."""

    model: str = Field(default="")
    response: str = Field(...)
    done: bool = Field(default=True)
    total_duration: int | None = Field(default=None)
    prompt_eval_count: int | None = Field(default=None)
    eval_count: int | None = Field(default=None)

    def usage(self) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_eval_count or 0,
            completion_tokens=self.eval_count or 0,
        )


# =============================================================================
# OpenAI
# =============================================================================


class ChatMessage(BaseModel):
    """A message in a chat completion request."""

    role: Literal["system", "user", "assistant"] = Field(...)
    content: str = Field(...)


class OpenAIChoice(BaseModel):
    message: ChatMessage


class OpenAIUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIChatResponse(BaseModel):
    """Response from the OpenAI chat completions endpoint."""

    model: str = Field(default="")
    choices: list[OpenAIChoice] = Field(default_factory=list)
    usage: OpenAIUsage | None = Field(default=None)


# =============================================================================
# Anthropic
# =============================================================================


class AnthropicContentBlock(BaseModel):
    type: str = "text"
    text: str = ""


class AnthropicUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class AnthropicMessageResponse(BaseModel):
    """Response from the Anthropic messages endpoint."""

    model: str = Field(default="")
    content: list[AnthropicContentBlock] = Field(default_factory=list)
    usage: AnthropicUsage | None = Field(default=None)
