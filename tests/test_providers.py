"""Tests for deliberation/providers/*. SDK clients are replaced with mocks."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest
from google.genai import errors as genai_errors

from config.config_loader import ProviderConfig
from deliberation.models import ChatMessage, ErrorKind
from deliberation.providers.base import ProviderError
from deliberation.providers.gemini import GeminiProvider, fold_messages
from deliberation.providers.local import DEFAULT_LOCAL_BASE_URL, LocalProvider
from deliberation.providers.openai_provider import OpenAIProvider
from deliberation.providers.openrouter import OpenRouterProvider
from deliberation.providers.perplexity import PerplexityProvider

MESSAGES = [
    ChatMessage(role="system", content="Be precise."),
    ChatMessage(role="user", content="Pick a queue."),
]


def _completion(content: str | None) -> MagicMock:
    completion = MagicMock()
    completion.choices = [MagicMock(message=MagicMock(content=content))]
    completion.usage = None
    return completion


def _status_error(status: int, body: str) -> openai.APIStatusError:
    response = httpx.Response(status, text=body, request=httpx.Request("POST", "https://api.example/v1"))
    return openai.APIStatusError("upstream failure", response=response, body=None)


@pytest.fixture
def openai_config() -> ProviderConfig:
    return ProviderConfig(name="openai", api_key_env="TEST_OPENAI_KEY", max_tokens=512)


@pytest.fixture
def openai_provider(openai_config, monkeypatch) -> OpenAIProvider:
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
    provider = OpenAIProvider(openai_config, "gpt-a", timeout_sec=5)
    provider._client = MagicMock()
    return provider


def test_openai_missing_key_is_configuration_error(openai_config, monkeypatch):
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    with pytest.raises(ProviderError) as exc_info:
        OpenAIProvider(openai_config, "gpt-a", timeout_sec=5)
    assert exc_info.value.kind is ErrorKind.CONFIGURATION
    assert "TEST_OPENAI_KEY" in exc_info.value.message


async def test_openai_generate_returns_text(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(return_value=_completion("Use Kafka."))
    text = await openai_provider.generate(MESSAGES)
    assert text == "Use Kafka."
    kwargs = openai_provider._client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-a"
    assert kwargs["max_tokens"] == 512
    assert kwargs["messages"] == [
        {"role": "system", "content": "Be precise."},
        {"role": "user", "content": "Pick a queue."},
    ]


async def test_openai_empty_content_is_empty_string(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(return_value=_completion(None))
    assert await openai_provider.generate(MESSAGES) == ""


async def test_openai_status_error_is_classified(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(
        side_effect=_status_error(401, '{"error": {"message": "Incorrect API key provided"}}')
    )
    with pytest.raises(ProviderError) as exc_info:
        await openai_provider.generate(MESSAGES)
    assert exc_info.value.kind is ErrorKind.AUTH_INVALID
    assert exc_info.value.message == "OpenAI API key is invalid."


async def test_openai_timeout(openai_config, monkeypatch):
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
    provider = OpenAIProvider(openai_config, "gpt-a", timeout_sec=0.01)

    async def slow_create(**kwargs):
        await asyncio.sleep(1)

    provider._client = MagicMock()
    provider._client.chat.completions.create = slow_create
    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(MESSAGES)
    assert exc_info.value.kind is ErrorKind.TIMEOUT


async def test_openai_unexpected_error_is_upstream(openai_provider):
    openai_provider._client.chat.completions.create = AsyncMock(side_effect=RuntimeError("socket closed"))
    with pytest.raises(ProviderError) as exc_info:
        await openai_provider.generate(MESSAGES)
    assert exc_info.value.kind is ErrorKind.UPSTREAM
    assert "socket closed" in exc_info.value.message


async def test_openrouter_error_uses_raw_metadata(monkeypatch):
    monkeypatch.setenv("TEST_OPENROUTER_KEY", "or-test")
    config = ProviderConfig(
        name="openrouter", api_key_env="TEST_OPENROUTER_KEY", base_url="https://openrouter.example/api/v1"
    )
    provider = OpenRouterProvider(config, "upstage/solar-pro-3:free", timeout_sec=5)
    provider._client = MagicMock()
    body = '{"error": {"message": "Provider returned error", "metadata": {"raw": "Model is overheated"}}}'
    provider._client.chat.completions.create = AsyncMock(side_effect=_status_error(400, body))
    with pytest.raises(ProviderError) as exc_info:
        await provider.generate(MESSAGES)
    assert exc_info.value.kind is ErrorKind.UPSTREAM
    assert exc_info.value.message == "OpenRouter error (400): Model is overheated"


def test_openrouter_requires_base_url(monkeypatch):
    monkeypatch.setenv("TEST_OPENROUTER_KEY", "or-test")
    config = ProviderConfig(name="openrouter", api_key_env="TEST_OPENROUTER_KEY")
    with pytest.raises(ProviderError) as exc_info:
        OpenRouterProvider(config, "x", timeout_sec=5)
    assert exc_info.value.kind is ErrorKind.CONFIGURATION


def test_perplexity_missing_key(monkeypatch):
    monkeypatch.delenv("TEST_PPLX_KEY", raising=False)
    config = ProviderConfig(name="perplexity", api_key_env="TEST_PPLX_KEY", base_url="https://pplx.example")
    with pytest.raises(ProviderError) as exc_info:
        PerplexityProvider(config, "sonar-pro", timeout_sec=5)
    assert exc_info.value.kind is ErrorKind.CONFIGURATION


def test_local_needs_no_credential(monkeypatch):
    monkeypatch.delenv("TEST_LOCAL_URL", raising=False)
    provider = LocalProvider(ProviderConfig(name="local", base_url_env="TEST_LOCAL_URL"), "tiny", timeout_sec=5)
    assert provider._base_url() == DEFAULT_LOCAL_BASE_URL
    assert provider.model_string() == "tiny"


def test_local_base_url_env_override(monkeypatch):
    monkeypatch.setenv("TEST_LOCAL_URL", "http://gpu-box:8080/v1")
    config = ProviderConfig(name="local", base_url="http://localhost:1234/v1", base_url_env="TEST_LOCAL_URL")
    provider = LocalProvider(config, "tiny", timeout_sec=5)
    assert provider._base_url() == "http://gpu-box:8080/v1"


def test_fold_messages():
    system, combined = fold_messages(
        [
            ChatMessage(role="system", content="Sys"),
            ChatMessage(role="user", content="First"),
            ChatMessage(role="user", content="Second"),
        ]
    )
    assert system == "Sys"
    assert combined == "First\nSecond"


def test_fold_messages_without_system():
    system, combined = fold_messages([ChatMessage(role="user", content="Only")])
    assert system is None
    assert combined == "Only"


@pytest.fixture
def gemini_provider(monkeypatch) -> GeminiProvider:
    monkeypatch.setenv("TEST_GEMINI_KEY", "g-test")
    provider = GeminiProvider(ProviderConfig(name="gemini", api_key_env="TEST_GEMINI_KEY"), "gemini-upstream", 5)
    provider._client = MagicMock()
    return provider


def test_gemini_missing_key(monkeypatch):
    monkeypatch.delenv("TEST_GEMINI_KEY", raising=False)
    with pytest.raises(ProviderError) as exc_info:
        GeminiProvider(ProviderConfig(name="gemini", api_key_env="TEST_GEMINI_KEY"), "gemini-upstream", 5)
    assert exc_info.value.kind is ErrorKind.CONFIGURATION


async def test_gemini_generate_folds_messages(gemini_provider):
    gemini_provider._client.aio.models.generate_content = AsyncMock(
        return_value=MagicMock(text="Use SQS.", usage_metadata=None)
    )
    text = await gemini_provider.generate(MESSAGES)
    assert text == "Use SQS."
    kwargs = gemini_provider._client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-upstream"
    assert kwargs["contents"] == "Pick a queue."
    assert kwargs["config"].system_instruction == "Be precise."


async def test_gemini_quota_error(gemini_provider):
    error = genai_errors.APIError(
        429, {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}
    )
    gemini_provider._client.aio.models.generate_content = AsyncMock(side_effect=error)
    with pytest.raises(ProviderError) as exc_info:
        await gemini_provider.generate(MESSAGES)
    assert exc_info.value.kind is ErrorKind.QUOTA_EXCEEDED


async def test_gemini_none_text_is_empty_string(gemini_provider):
    gemini_provider._client.aio.models.generate_content = AsyncMock(
        return_value=MagicMock(text=None, usage_metadata=None)
    )
    assert await gemini_provider.generate(MESSAGES) == ""
