"""Tests for the AI backend clients."""

import json

import httpx
import pytest

from aicli.llm import (
    AnthropicClient,
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

DIFF = "diff --git a/app.py b/app.py\n+def login(): ...\n"


HOSTS = {"api.openai.com": "openai", "api.anthropic.com": "anthropic"}


class Recorder:
    """httpx.MockTransport handler returning canned responses per backend."""

    def __init__(self, **responses):
        self.responses = responses
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.responses[HOSTS.get(request.url.host, request.url.host)]
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def ollama_reply(text: str) -> tuple[int, dict]:
    return 200, {"model": "gemma2:9b", "response": text, "done": True, "prompt_eval_count": 40, "eval_count": 8}


def openai_reply(text: str) -> tuple[int, dict]:
    return 200, {
        "model": "gpt-4o-mini",
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 50, "completion_tokens": 10, "total_tokens": 60},
    }


def anthropic_reply(text: str) -> tuple[int, dict]:
    return 200, {
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 30, "output_tokens": 5},
    }


@pytest.fixture
def keyed_settings(test_settings):
    """Settings with API keys for both remote backends."""
    return test_settings.model_copy(update={"openai_api_key": "sk-test", "anthropic_api_key": "ak-test"})


class TestGetBackend:
    """Test backend selection."""

    def test_local(self, test_settings):
        client = get_backend("local", test_settings)

        assert isinstance(client, OllamaClient)
        assert client.model == test_settings.ai_cli_local_model
        assert client.base_url == "http://localhost:11434"

    def test_remote_backends(self, keyed_settings):
        assert isinstance(get_backend("openai", keyed_settings), OpenAIClient)
        assert isinstance(get_backend("anthropic", keyed_settings), AnthropicClient)

    @pytest.mark.parametrize("name, message", [
        ("openai", "OPENAI_API_KEY not set"),
        ("anthropic", "ANTHROPIC_API_KEY not set"),
    ])
    def test_missing_key(self, test_settings, name, message):
        with pytest.raises(LLMConfigurationError, match=message):
            get_backend(name, test_settings)

    def test_unknown_backend(self, test_settings):
        with pytest.raises(LLMConfigurationError, match="Unsupported model: gemini"):
            get_backend("gemini", test_settings)


class TestOllamaClient:
    """Test the Ollama client."""

    @pytest.mark.asyncio
    async def test_generate_commit(self, test_settings):
        recorder = Recorder(localhost=ollama_reply("Commit message: add login endpoint"))
        client = get_backend("local", test_settings, transport=httpx.MockTransport(recorder))

        async with client:
            response = await client.generate_commit(DIFF, extra_context="closes #3")

        assert response.content == "feat: add login endpoint"
        assert response.backend == "local"
        assert response.usage.total_tokens == 48

        request = recorder.requests[0]
        assert request.url.path == "/api/generate"
        payload = recorder.payload()
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.3
        assert payload["options"]["num_predict"] == 150
        assert "ADDITIONAL CONTEXT:\ncloses #3" in payload["prompt"]
        assert payload["system"].startswith("You are an expert Git assistant")

    @pytest.mark.asyncio
    async def test_explain_options(self, test_settings):
        recorder = Recorder(localhost=ollama_reply("It adds a login endpoint."))
        client = get_backend("local", test_settings, transport=httpx.MockTransport(recorder))

        async with client:
            response = await client.explain(DIFF, detailed=True)

        assert response.content == "It adds a login endpoint."
        assert recorder.payload()["options"] == {"temperature": 0.5, "top_p": 0.9, "num_predict": 500}

    @pytest.mark.asyncio
    async def test_missing_model(self, test_settings):
        recorder = Recorder(localhost=(404, {"error": "model not found"}))
        client = get_backend("local", test_settings, transport=httpx.MockTransport(recorder))

        async with client:
            with pytest.raises(LLMAPIError) as exc_info:
                await client.generate("hi")

        assert exc_info.value.status_code == 404
        assert "ollama pull gemma2:9b" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = OllamaClient(
            model="gemma2:9b",
            base_url="http://localhost:11434",
            transport=httpx.MockTransport(refuse),
            max_retries=1,
        )

        async with client:
            with pytest.raises(LLMConnectionError, match="Failed to connect to Ollama"):
                await client.generate("hi")

    @pytest.mark.asyncio
    async def test_empty_response(self, test_settings):
        recorder = Recorder(localhost=ollama_reply("   "))
        client = get_backend("local", test_settings, transport=httpx.MockTransport(recorder))

        async with client:
            with pytest.raises(LLMAPIError, match="No content"):
                await client.generate("hi")

    @pytest.mark.asyncio
    async def test_invalid_json(self, test_settings):
        recorder = Recorder(localhost=(200, "not json"))
        client = get_backend("local", test_settings, transport=httpx.MockTransport(recorder))

        async with client:
            with pytest.raises(LLMAPIError, match="Failed to parse"):
                await client.generate("hi")


class TestRemoteClients:
    """Test the OpenAI and Anthropic clients."""

    @pytest.mark.asyncio
    async def test_openai_request(self, keyed_settings):
        recorder = Recorder(openai=openai_reply("fix(auth): reject expired tokens"))
        client = get_backend("openai", keyed_settings, transport=httpx.MockTransport(recorder))

        async with client:
            response = await client.generate_commit(DIFF)

        assert response.content == "fix(auth): reject expired tokens"
        assert response.usage.total_tokens == 60

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        messages = recorder.payload()["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_openai_no_choices(self, keyed_settings):
        recorder = Recorder(openai=(200, {"model": "gpt-4o-mini", "choices": []}))
        client = get_backend("openai", keyed_settings, transport=httpx.MockTransport(recorder))

        async with client:
            with pytest.raises(LLMAPIError, match="No response from OpenAI API"):
                await client.generate("hi")

    @pytest.mark.asyncio
    async def test_openai_auth_error(self, keyed_settings):
        recorder = Recorder(openai=(401, {"error": {"message": "bad key"}}))
        client = get_backend("openai", keyed_settings, transport=httpx.MockTransport(recorder))

        async with client:
            with pytest.raises(LLMAPIError) as exc_info:
                await client.generate("hi")

        assert exc_info.value.status_code == 401
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_anthropic_request(self, keyed_settings):
        recorder = Recorder(anthropic=anthropic_reply("docs: describe setup"))
        client = get_backend("anthropic", keyed_settings, transport=httpx.MockTransport(recorder))

        async with client:
            response = await client.generate_commit(DIFF)

        assert response.content == "docs: describe setup"
        assert response.usage.total_tokens == 35

        request = recorder.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "ak-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        payload = recorder.payload()
        assert payload["max_tokens"] == 150
        assert payload["messages"][0]["role"] == "user"


class TestGenerateCommitMessage:
    """Test the commit entry point and its OpenAI fallback."""

    @pytest.mark.asyncio
    async def test_uses_default_backend(self, test_settings):
        recorder = Recorder(localhost=ollama_reply("feat: add login"))

        response = await generate_commit_message(
            DIFF, settings=test_settings, transport=httpx.MockTransport(recorder)
        )

        assert response.content == "feat: add login"
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_openai(self, keyed_settings):
        settings = keyed_settings.model_copy(update={"ai_cli_fallback_to_openai": True})
        recorder = Recorder(
            localhost=(404, {"error": "model not found"}),
            openai=openai_reply("feat: add login"),
        )

        response = await generate_commit_message(
            DIFF, backend="local", settings=settings, transport=httpx.MockTransport(recorder)
        )

        assert response.backend == "openai"
        assert [r.url.host for r in recorder.requests] == ["localhost", "api.openai.com"]

    @pytest.mark.asyncio
    async def test_no_fallback_when_disabled(self, keyed_settings):
        recorder = Recorder(localhost=(404, {"error": "model not found"}))

        with pytest.raises(LLMAPIError):
            await generate_commit_message(
                DIFF, backend="local", settings=keyed_settings, transport=httpx.MockTransport(recorder)
            )

        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_no_fallback_without_key(self, test_settings):
        settings = test_settings.model_copy(update={"ai_cli_fallback_to_openai": True})
        recorder = Recorder(localhost=(500, "internal error"))

        with pytest.raises(LLMAPIError):
            await generate_commit_message(
                DIFF, backend="local", settings=settings, transport=httpx.MockTransport(recorder)
            )

    @pytest.mark.asyncio
    async def test_no_fallback_for_remote_backend(self, keyed_settings):
        settings = keyed_settings.model_copy(update={"ai_cli_fallback_to_openai": True})
        recorder = Recorder(anthropic=(500, "overloaded"))

        with pytest.raises(LLMAPIError):
            await generate_commit_message(
                DIFF, backend="anthropic", settings=settings, transport=httpx.MockTransport(recorder)
            )

        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_all_backends_fail(self, keyed_settings):
        settings = keyed_settings.model_copy(update={"ai_cli_fallback_to_openai": True})
        recorder = Recorder(localhost=(404, {}), openai=(500, "down"))

        with pytest.raises(LLMError, match="any available AI backend"):
            await generate_commit_message(
                DIFF, backend="local", settings=settings, transport=httpx.MockTransport(recorder)
            )


class TestGenerateExplanation:
    """Test the explain entry point."""

    @pytest.mark.asyncio
    async def test_explanation(self, keyed_settings):
        recorder = Recorder(openai=openai_reply("Adds a login endpoint."))

        response = await generate_explanation(
            DIFF, backend="openai", settings=keyed_settings, transport=httpx.MockTransport(recorder)
        )

        assert response.content == "Adds a login endpoint."
        assert recorder.payload()["max_tokens"] == 200
