"""Tests for deliberation/dispatcher.py."""

from unittest.mock import AsyncMock

import pytest

from deliberation.dispatcher import Dispatcher, build_provider, handle_request, http_status
from deliberation.models import (
    ChatMessage,
    DeliberationRequest,
    DispatchFailure,
    DispatchSuccess,
    ErrorKind,
    HistoryEntry,
)
from deliberation.providers.base import ProviderError
from deliberation.providers.local import LocalProvider
from deliberation.providers.openrouter import OpenRouterProvider
from tests.conftest import MODEL_A, MODEL_B, MockProvider

USER = [ChatMessage(role="user", content="hi")]


def _factory_for(provider):
    def factory(model_id, config, registry):
        return provider

    return factory


async def test_dispatch_success(sample_app_config, sample_registry):
    provider = MockProvider("openai", "All good")
    dispatcher = Dispatcher(sample_app_config, sample_registry, provider_factory=_factory_for(provider))
    result = await dispatcher.dispatch(MODEL_A, USER)
    assert isinstance(result, DispatchSuccess)
    assert result.text == "All good"
    assert result.duration_ms >= 0
    provider.generate.assert_awaited_once_with(USER)


async def test_dispatch_provider_error_becomes_failure(sample_app_config, sample_registry):
    provider = MockProvider("openai")
    provider.generate = AsyncMock(side_effect=ProviderError("openai", "quota gone", ErrorKind.QUOTA_EXCEEDED))
    dispatcher = Dispatcher(sample_app_config, sample_registry, provider_factory=_factory_for(provider))
    result = await dispatcher.dispatch(MODEL_A, USER)
    assert isinstance(result, DispatchFailure)
    assert result.kind is ErrorKind.QUOTA_EXCEEDED
    assert result.message == "quota gone"


async def test_dispatch_never_raises_on_unexpected_errors(sample_app_config, sample_registry):
    def exploding_factory(model_id, config, registry):
        raise KeyError("boom")

    dispatcher = Dispatcher(sample_app_config, sample_registry, provider_factory=exploding_factory)
    result = await dispatcher.dispatch(MODEL_A, USER)
    assert isinstance(result, DispatchFailure)
    assert result.kind is ErrorKind.UPSTREAM


async def test_unknown_model_id_is_configuration_error(sample_app_config, sample_registry):
    dispatcher = Dispatcher(sample_app_config, sample_registry)
    result = await dispatcher.dispatch("claude-something", USER)
    assert isinstance(result, DispatchFailure)
    assert result.kind is ErrorKind.CONFIGURATION


async def test_missing_credential_is_configuration_error(sample_app_config, sample_registry, monkeypatch):
    monkeypatch.delenv("TEST_OPENAI_KEY", raising=False)
    dispatcher = Dispatcher(sample_app_config, sample_registry)
    result = await dispatcher.dispatch(MODEL_A, USER)
    assert isinstance(result, DispatchFailure)
    assert result.kind is ErrorKind.CONFIGURATION
    assert "TEST_OPENAI_KEY" in result.message


def test_build_provider_picks_class_and_upstream_model(sample_app_config, sample_registry, monkeypatch):
    monkeypatch.setenv("TEST_OPENROUTER_KEY", "or-test")
    provider = build_provider(MODEL_B, sample_app_config, sample_registry)
    assert isinstance(provider, OpenRouterProvider)
    assert provider.model_string() == "vendor/model-b"


def test_build_provider_local_without_settings_entry(sample_app_config, sample_registry):
    del sample_app_config.providers["local"]
    provider = build_provider("local/qwen", sample_app_config, sample_registry)
    assert isinstance(provider, LocalProvider)
    assert provider.model_string() == "qwen"


async def test_deliberate_builds_messages(sample_app_config, sample_registry):
    provider = MockProvider("openrouter", "ok")
    dispatcher = Dispatcher(sample_app_config, sample_registry, provider_factory=_factory_for(provider))
    request = DeliberationRequest(
        prompt="Q",
        round=2,
        model_id=MODEL_B,
        previous_responses=[HistoryEntry("Model A", 1, "A says", MODEL_A)],
    )
    await dispatcher.deliberate(request)
    messages = provider.generate.call_args.args[0]
    assert messages[0].role == "system"
    assert "[Model A - Round 1]:\nA says" in messages[1].content


def test_http_status_mapping():
    assert http_status(DispatchSuccess("x")) == 200
    assert http_status(DispatchFailure(ErrorKind.TIMEOUT, "late")) == 504
    assert http_status(DispatchFailure(ErrorKind.AUTH_INVALID, "bad key")) == 500


async def test_handle_request_missing_fields(fake_dispatcher):
    status, payload = await handle_request({"prompt": "Q"}, fake_dispatcher)
    assert status == 400
    assert "error" in payload
    assert fake_dispatcher.requests == []


async def test_handle_request_bad_round(fake_dispatcher):
    status, _payload = await handle_request({"prompt": "Q", "model": MODEL_A, "round": "two"}, fake_dispatcher)
    assert status == 400


async def test_handle_request_success(fake_dispatcher):
    body = {
        "prompt": "Q",
        "model": MODEL_A,
        "round": 2,
        "previousResponses": [{"modelName": "Model B", "round": 1, "text": "B says", "modelId": MODEL_B}],
        "roundNote": "Be brief",
    }
    status, payload = await handle_request(body, fake_dispatcher)
    assert status == 200
    assert "text" in payload
    request = fake_dispatcher.requests[0]
    assert request.round == 2
    assert request.round_note == "Be brief"
    assert request.previous_responses == [HistoryEntry("Model B", 1, "B says", MODEL_B)]


@pytest.mark.parametrize(
    "failure, expected_status",
    [
        (DispatchFailure(ErrorKind.TIMEOUT, "Request timed out after 55s"), 504),
        (DispatchFailure(ErrorKind.INSUFFICIENT_CREDITS, "no credits"), 500),
    ],
)
async def test_handle_request_failure_status(fake_dispatcher, failure, expected_status):
    fake_dispatcher.replies[MODEL_A] = failure
    status, payload = await handle_request({"prompt": "Q", "model": MODEL_A}, fake_dispatcher)
    assert status == expected_status
    assert payload == {"error": failure.message}
