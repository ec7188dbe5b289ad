"""Async clients for the supported AI backends.

This module provides thin httpx wrappers around Ollama (local), OpenAI and
Anthropic, a factory selecting one by name, and the commit message entry
point with its local-to-OpenAI fallback. A backend failure raises an LLMError
and never reaches the approval gate.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from aicli.config import Settings, get_settings
from aicli.exceptions import AICliError
from aicli.llm.models import (
    AIResponse,
    AnthropicMessageResponse,
    ChatMessage,
    GenerationOptions,
    OllamaGenerateResponse,
    OpenAIChatResponse,
    TokenUsage,
)
from aicli.llm.prompts import (
    COMMIT_SYSTEM_MESSAGE,
    EXPLAIN_SYSTEM_MESSAGE,
    create_commit_prompt,
    create_explain_prompt,
    refine_conventional_commit,
)
from aicli.logging import Timer, get_logger

logger = get_logger("aicli.llm.client")

ANTHROPIC_VERSION = "2023-06-01"


# =============================================================================
# Exceptions
# =============================================================================


class LLMError(AICliError):
    """Base exception for AI backend errors."""

    pass


class LLMConnectionError(LLMError):
    """Raised when the backend cannot be reached or times out."""

    pass


class LLMAPIError(LLMError):
    """Raised when the backend returns an error or an unusable response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMConfigurationError(LLMError):
    """Raised when a backend is unknown or missing credentials."""

    pass


# =============================================================================
# Base client
# =============================================================================


class BaseLLMClient(ABC):
    """Common plumbing for AI backend clients.

    Attributes:
        name: Backend name used on the command line
        model: Model identifier sent to the backend
        timeout: Request timeout in seconds
        max_retries: Attempts for connection failures and timeouts
    """

    name: str = ""
    display_name: str = ""

    def __init__(
        self,
        model: str,
        base_url: str,
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = 2,
    ):
        """Initialize the client.

        Args:
            model: Model identifier
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
            max_retries: Attempts for connection failures
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Get or create an async HTTP client, mapping httpx errors.

        Yields:
            httpx.AsyncClient: The HTTP client instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                headers=self._headers(),
                transport=self._transport,
            )

        try:
            yield self._client
        except httpx.ConnectError as e:
            raise LLMConnectionError(
                f"Failed to connect to {self.display_name} at {self.base_url}: {e}"
            ) from e
        except httpx.TimeoutException as e:
            raise LLMConnectionError(
                f"Request to {self.display_name} timed out after {self.timeout}s. "
                f"Consider increasing AI_CLI_TIMEOUT."
            ) from e
        except httpx.HTTPStatusError as e:
            raise LLMAPIError(
                self._status_message(e.response),
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise LLMConnectionError(f"{self.display_name} request failed: {e}") from e

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _status_message(self, response: httpx.Response) -> str:
        return f"{self.display_name} API error ({response.status_code}): {response.text}"

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BaseLLMClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(LLMConnectionError),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            reraise=True,
        ):
            with attempt:
                async with self._get_client() as client:
                    response = await client.post(f"{self.base_url}{path}", json=payload)
                    response.raise_for_status()
                    try:
                        return response.json()
                    except ValueError as e:
                        raise LLMAPIError(
                            f"Failed to parse {self.display_name} response: {e}",
                            status_code=response.status_code,
                        ) from e
        raise LLMConnectionError(f"{self.display_name} request was not attempted")

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        system: str,
        options: GenerationOptions,
    ) -> AIResponse:
        """Send one completion request and normalize the reply."""

    async def generate(
        self,
        prompt: str,
        system: str = "",
        options: GenerationOptions | None = None,
    ) -> AIResponse:
        """Generate text for a prompt.

        Args:
            prompt: Prompt text
            system: System instruction (ignored where the API has none)
            options: Sampling options

        Returns:
            AIResponse: Normalized response

        Raises:
            LLMConnectionError: If the backend is unreachable
            LLMAPIError: If the backend errors or returns nothing usable
        """
        options = options or GenerationOptions()
        logger.debug(
            "generate() called",
            backend=self.name,
            model=self.model,
            prompt_chars=len(prompt),
        )

        async with Timer(f"{self.display_name} request ({self.model})", logger) as timer:
            response = await self._complete(prompt, system, options)

        if not response.content:
            raise LLMAPIError(f"No content in {self.display_name} response")

        logger.debug(
            "generate() complete",
            backend=self.name,
            elapsed_s=f"{timer.elapsed:.3f}",
            response_chars=len(response.content),
            total_tokens=response.usage.total_tokens if response.usage else None,
        )
        return response

    async def generate_commit(
        self,
        diff: str,
        extra_context: str | None = None,
        context: str | None = None,
    ) -> AIResponse:
        """Generate a conventional commit message for a diff."""
        response = await self.generate(
            create_commit_prompt(diff, extra_context, context),
            system=COMMIT_SYSTEM_MESSAGE,
            options=GenerationOptions.for_commit(),
        )
        message = refine_conventional_commit(response.content)
        if not message:
            raise LLMAPIError(f"{self.display_name} returned an empty commit message")
        return response.model_copy(update={"content": message})

    async def explain(
        self,
        diff: str,
        detailed: bool = False,
        context: str | None = None,
    ) -> AIResponse:
        """Explain the changes in a diff."""
        return await self.generate(
            create_explain_prompt(diff, detailed, context),
            system=EXPLAIN_SYSTEM_MESSAGE,
            options=GenerationOptions.for_explain(detailed),
        )


# =============================================================================
# Backends
# =============================================================================


class OllamaClient(BaseLLMClient):
    """Client for a local Ollama server (``/api/generate``)."""

    name = "local"
    display_name = "Ollama"

    def _status_message(self, response: httpx.Response) -> str:
        if response.status_code == 404:
            return (
                f"Model '{self.model}' not found. "
                f"Run 'ollama pull {self.model}' to download it."
            )
        return super()._status_message(response)

    async def _complete(self, prompt: str, system: str, options: GenerationOptions) -> AIResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": options.temperature,
                "top_p": options.top_p,
                "num_predict": options.max_tokens,
            },
        }
        if system:
            payload["system"] = system

        data = await self._post("/api/generate", payload)
        try:
            parsed = OllamaGenerateResponse(**data)
        except ValidationError as e:
            raise LLMAPIError(f"Failed to parse Ollama response: {e}") from e

        return AIResponse(
            content=parsed.response.strip(),
            model=self.model,
            backend=self.name,
            usage=parsed.usage(),
        )


class OpenAIClient(BaseLLMClient):
    """Client for the OpenAI chat completions API."""

    name = "openai"
    display_name = "OpenAI"
    default_base_url = "https://api.openai.com/v1"

    def __init__(self, api_key: str, model: str, base_url: str | None = None, **kwargs: Any):
        self.api_key = api_key
        super().__init__(model, base_url or self.default_base_url, **kwargs)

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "Authorization": f"Bearer {self.api_key}"}

    async def _complete(self, prompt: str, system: str, options: GenerationOptions) -> AIResponse:
        messages = []
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.append(ChatMessage(role="user", content=prompt))

        data = await self._post(
            "/chat/completions",
            {
                "model": self.model,
                "messages": [m.model_dump() for m in messages],
                "temperature": options.temperature,
                "top_p": options.top_p,
                "max_tokens": options.max_tokens,
            },
        )
        try:
            parsed = OpenAIChatResponse(**data)
        except ValidationError as e:
            raise LLMAPIError(f"Failed to parse OpenAI response: {e}") from e

        if not parsed.choices:
            raise LLMAPIError("No response from OpenAI API")

        usage = None
        if parsed.usage is not None:
            usage = TokenUsage(
                prompt_tokens=parsed.usage.prompt_tokens,
                completion_tokens=parsed.usage.completion_tokens,
            )
        return AIResponse(
            content=parsed.choices[0].message.content.strip(),
            model=parsed.model or self.model,
            backend=self.name,
            usage=usage,
        )


class AnthropicClient(BaseLLMClient):
    """Client for the Anthropic messages API."""

    name = "anthropic"
    display_name = "Anthropic"
    default_base_url = "https://api.anthropic.com/v1"

    def __init__(self, api_key: str, model: str, base_url: str | None = None, **kwargs: Any):
        self.api_key = api_key
        super().__init__(model, base_url or self.default_base_url, **kwargs)

    def _headers(self) -> dict[str, str]:
        return {
            **super()._headers(),
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    async def _complete(self, prompt: str, system: str, options: GenerationOptions) -> AIResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        data = await self._post("/messages", payload)
        try:
            parsed = AnthropicMessageResponse(**data)
        except ValidationError as e:
            raise LLMAPIError(f"Failed to parse Anthropic response: {e}") from e

        if not parsed.content:
            raise LLMAPIError("No content in Anthropic response")
        text = "".join(block.text for block in parsed.content if block.type == "text")

        usage = None
        if parsed.usage is not None:
            usage = TokenUsage(
                prompt_tokens=parsed.usage.input_tokens,
                completion_tokens=parsed.usage.output_tokens,
            )
        return AIResponse(
            content=text.strip(),
            model=parsed.model or self.model,
            backend=self.name,
            usage=usage,
        )


# =============================================================================
# Factory and entry points
# =============================================================================


BACKENDS = ("local", "openai", "anthropic")


def get_backend(
    name: str,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> BaseLLMClient:
    """Create the client for a backend name.

    Args:
        name: One of ``local``, ``openai``, ``anthropic``
        settings: Settings instance (uses global if not provided)
        transport: Optional httpx transport

    Returns:
        BaseLLMClient: Configured client

    Raises:
        LLMConfigurationError: For unknown names or missing API keys
    """
    settings = settings or get_settings()
    timeout = settings.ai_cli_timeout

    if name == "local":
        return OllamaClient(
            model=settings.ai_cli_local_model,
            base_url=settings.ollama_base_url,
            timeout=timeout,
            transport=transport,
        )
    if name == "openai":
        if not settings.openai_api_key:
            raise LLMConfigurationError("OPENAI_API_KEY not set")
        return OpenAIClient(
            api_key=settings.openai_api_key,
            model=settings.ai_cli_openai_model,
            timeout=timeout,
            transport=transport,
        )
    if name == "anthropic":
        if not settings.anthropic_api_key:
            raise LLMConfigurationError("ANTHROPIC_API_KEY not set")
        return AnthropicClient(
            api_key=settings.anthropic_api_key,
            model=settings.ai_cli_anthropic_model,
            timeout=timeout,
            transport=transport,
        )

    raise LLMConfigurationError(
        f"Unsupported model: {name}. Use 'local', 'openai', or 'anthropic'"
    )


async def generate_commit_message(
    diff: str,
    backend: str | None = None,
    extra_context: str | None = None,
    context: str | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AIResponse:
    """Generate a commit message, falling back from local to OpenAI.

    The fallback applies only when the local backend was selected, fallback
    is enabled and an OpenAI key is configured.

    Args:
        diff: Staged diff
        backend: Backend name (defaults to settings)
        extra_context: User supplied hint
        context: Rendered context bundle
        settings: Settings instance (uses global if not provided)
        transport: Optional httpx transport

    Returns:
        AIResponse: Refined commit message

    Raises:
        LLMError: If every attempted backend fails
    """
    settings = settings or get_settings()
    backend = backend or settings.ai_cli_default_model

    try:
        async with get_backend(backend, settings, transport) as client:
            return await client.generate_commit(diff, extra_context, context)
    except LLMError as e:
        can_fall_back = (
            backend == "local"
            and settings.ai_cli_fallback_to_openai
            and bool(settings.openai_api_key)
        )
        if not can_fall_back:
            raise
        logger.warning("Local model failed, trying OpenAI", error=str(e))
        first_error = e

    try:
        async with get_backend("openai", settings, transport) as client:
            return await client.generate_commit(diff, extra_context, context)
    except LLMError as e:
        logger.error("All AI backends failed", local_error=str(first_error), openai_error=str(e))
        raise LLMError(
            "Failed to generate commit message with any available AI backend"
        ) from e


async def generate_explanation(
    diff: str,
    detailed: bool = False,
    backend: str | None = None,
    context: str | None = None,
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AIResponse:
    """Explain a diff with the selected backend (no fallback)."""
    settings = settings or get_settings()
    async with get_backend(backend or settings.ai_cli_default_model, settings, transport) as client:
        return await client.explain(diff, detailed, context)
